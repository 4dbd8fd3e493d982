"""Request dependencies shared by the API routers."""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Header, HTTPException, Request
from fastapi.responses import JSONResponse

from ..OracleNode import OracleNode
from ..TradingPair import normalize_pair

logger = logging.getLogger(__name__)


@dataclass
class ApiSettings:
    """Node settings reported by the API.

    :ivar fetch_interval_ms: Period of the background fetch cycle.
    :ivar heartbeat_interval_ms: Age after which ``/price`` refreshes a pair on demand.
    :ivar version: Service version string.
    """

    fetch_interval_ms: int = 10_000
    heartbeat_interval_ms: int = 300_000
    version: str = "1.0.0"


def get_node(request: Request) -> OracleNode:
    """Get the oracle node from app state."""
    node = getattr(request.app.state, "node", None)
    if not node:
        raise HTTPException(status_code=503, detail="Oracle node not initialized")
    return node


def get_settings(request: Request) -> ApiSettings:
    """Get API settings from app state."""
    return getattr(request.app.state, "settings", None) or ApiSettings()


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    """JSON error body of the form ``{"error": ..., **extra}``."""
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


def resolve_pair(node: OracleNode, raw: str) -> str | None:
    """Canonical pair for a URL segment like ``ETH-USD`` or ``eth-usd``.

    :returns: Canonical pair name, or None if malformed or not served.
    """
    try:
        pair = normalize_pair(raw)
    except ValueError:
        return None
    return pair if node.supports_pair(pair) else None


def unsupported_pair(node: OracleNode) -> JSONResponse:
    return error_response(400, "Unsupported pair", supportedPairs=node.pairs)


def verify_admin_key(
    request: Request,
    x_admin_key: Annotated[Optional[str], Header(alias="X-Admin-Key")] = None,
) -> bool:
    """
    Verify the admin API key for mutation endpoints.

    Requires an X-Admin-Key header matching the configured key. With no key
    configured, access is allowed.

    Raises:
        HTTPException 401 if key is required but missing
        HTTPException 403 if key is invalid
    """
    configured_key = getattr(request.app.state, "admin_api_key", None)

    if configured_key:
        if not x_admin_key:
            raise HTTPException(
                status_code=401,
                detail="X-Admin-Key header required for mutation endpoints"
            )
        if x_admin_key != configured_key:
            logger.warning("Invalid admin key attempt")
            raise HTTPException(status_code=403, detail="Invalid admin key")
        return True

    logger.debug("Admin key check bypassed (no key configured)")
    return True
