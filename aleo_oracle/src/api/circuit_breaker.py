"""
Circuit Breaker Endpoints

- GET /circuit-breaker/status - Per-pair states and the global config
- POST /circuit-breaker/{pair}/resume - Administrative manual resume
"""

import logging
import time

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..OracleNode import OracleNode
from .dependencies import get_node, resolve_pair, unsupported_pair, verify_admin_key

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/circuit-breaker", tags=["circuit-breaker"])


class ResumeResponse(BaseModel):
    """Response for a manual resume."""

    success: bool
    pair: str
    message: str


@router.get("/status")
async def get_status(node: OracleNode = Depends(get_node)) -> dict:
    breaker = node.circuit_breaker
    return {
        "config": breaker.get_config().to_dict(),
        "states": [s.to_dict() for s in breaker.get_all_states()],
        "timestamp": int(time.time() * 1000),
    }


@router.post("/{pair}/resume", response_model=ResumeResponse)
async def resume(
    pair: str,
    node: OracleNode = Depends(get_node),
    _authorized: bool = Depends(verify_admin_key),
):
    """Resume a halted pair, regardless of its remaining halt time."""
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    node.circuit_breaker.resume(canonical)
    logger.warning(f"Circuit breaker manually resumed for {canonical}")
    return ResumeResponse(
        success=True,
        pair=canonical,
        message=f"Circuit breaker resumed for {canonical}",
    )
