"""
Health Check Endpoints

Provides source health, per-pair data freshness and operator identity.
A node reports "degraded" (HTTP 503) while fewer sources are healthy than
the aggregator needs.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..OracleNode import OracleNode
from .dependencies import ApiSettings, get_node, get_settings

router = APIRouter(tags=["health"])


class SourcesHealth(BaseModel):
    """Health of the configured exchanges."""
    status: dict[str, bool]
    healthy: int
    total: int
    required: int


class PairFreshness(BaseModel):
    available: bool
    age: Optional[int] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str  # "healthy" or "degraded"
    timestamp: int
    operator: str
    sources: SourcesHealth
    prices: dict[str, PairFreshness]
    config: dict


class OperatorResponse(BaseModel):
    address: str
    supportedPairs: list[str]
    timestamp: int


@router.get("/health", response_model=HealthResponse)
async def health_check(
    node: OracleNode = Depends(get_node),
    settings: ApiSettings = Depends(get_settings),
):
    """
    Node health.

    Source health combines the last fetch cycles with the periodic probes.
    """
    health_map = node.source_manager.get_health_map()
    healthy = sum(1 for ok in health_map.values() if ok)
    required = node.aggregator.min_sources
    status = "healthy" if healthy >= required else "degraded"

    prices = {}
    for pair in node.pairs:
        age = node.store.get_price_age(pair)
        prices[pair] = PairFreshness(available=age is not None, age=age)

    response = HealthResponse(
        status=status,
        timestamp=int(time.time() * 1000),
        operator=node.signer.get_operator_address(),
        sources=SourcesHealth(
            status=health_map,
            healthy=healthy,
            total=len(health_map),
            required=required,
        ),
        prices=prices,
        config={
            "supportedPairs": node.pairs,
            "fetchInterval": settings.fetch_interval_ms,
            "heartbeatInterval": settings.heartbeat_interval_ms,
            "outlierThreshold": node.aggregator.outlier_threshold,
        },
    )
    return JSONResponse(
        status_code=200 if status == "healthy" else 503,
        content=response.model_dump(),
    )


@router.get("/operator", response_model=OperatorResponse)
async def get_operator(node: OracleNode = Depends(get_node)) -> OperatorResponse:
    return OperatorResponse(
        address=node.signer.get_operator_address(),
        supportedPairs=node.pairs,
        timestamp=int(time.time() * 1000),
    )
