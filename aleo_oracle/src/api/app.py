"""
Oracle Node HTTP API

FastAPI application serving the node's prices, TWAPs, statistics,
circuit breaker state and health. The node's periodic jobs run for the
lifetime of the application.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..OracleNode import OracleNode
from ..Scheduler import Scheduler
from . import circuit_breaker, health, prices
from .dependencies import ApiSettings

logger = logging.getLogger(__name__)

SERVICE_NAME = "Aleo Oracle Node"

ENDPOINTS = [
    "GET /prices",
    "GET /price/:pair",
    "GET /price/:pair/history",
    "GET /price/:pair/twap",
    "GET /price/:pair/stats",
    "GET /price/:pair/candles",
    "GET /price/:pair/analysis",
    "GET /circuit-breaker/status",
    "POST /circuit-breaker/:pair/resume",
    "GET /health",
    "GET /operator",
]


def create_app(
    node: OracleNode,
    scheduler: Optional[Scheduler] = None,
    admin_api_key: Optional[str] = None,
    settings: Optional[ApiSettings] = None,
) -> FastAPI:
    """Build the API application around a node.

    :param node: Oracle node whose state is served.
    :param scheduler: Periodic jobs started and stopped with the application.
    :param admin_api_key: Key required by administrative routes (open if None).
    :param settings: Intervals reported by ``/health``.
    :returns: FastAPI application.
    """
    settings = settings or ApiSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Starting {SERVICE_NAME} v{settings.version}")
        logger.info(f"Pairs: {node.pairs}")
        logger.info(f"Sources: {list(node.fetchers)}")
        if scheduler is not None:
            scheduler.start()

        yield

        logger.info("Shutting down service...")
        if scheduler is not None:
            await scheduler.stop()
        await node.close()
        logger.info("Service shutdown complete")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Aggregated, circuit-breaker guarded price feeds for the Aleo oracle program",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.node = node
    app.state.settings = settings
    app.state.admin_api_key = admin_api_key

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(prices.router)
    app.include_router(circuit_breaker.router)
    app.include_router(health.router)

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/")
    async def root() -> dict:
        """Root endpoint - service info."""
        return {
            "name": SERVICE_NAME,
            "version": settings.version,
            "operator": node.signer.get_operator_address(),
            "endpoints": ENDPOINTS,
            "supportedPairs": node.pairs,
        }

    return app
