"""
Price Endpoints

- GET /prices - Latest price of every served pair
- GET /price/{pair} - Latest signed consensus price with TWAP
- GET /price/{pair}/history - Raw history slice
- GET /price/{pair}/twap - TWAP breakdown by window
- GET /price/{pair}/stats - Statistics and trend for a named window
- GET /price/{pair}/candles - OHLC candles
- GET /price/{pair}/analysis - Stats, trend, TWAP, breaker state and charts
"""

import logging
import time

from fastapi import APIRouter, Depends, Query

from ..OracleNode import OracleNode
from ..PriceStore import DAY_MS, HOUR_MS
from ..TwapCalculator import TwapResult
from .dependencies import (
    ApiSettings,
    error_response,
    get_node,
    get_settings,
    resolve_pair,
    unsupported_pair,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["prices"])

MINUTE_MS = 60 * 1000

STATS_WINDOWS: dict[str, int] = {
    "5m": 5 * MINUTE_MS,
    "15m": 15 * MINUTE_MS,
    "1h": HOUR_MS,
    "4h": 4 * HOUR_MS,
    "24h": DAY_MS,
    "7d": 7 * DAY_MS,
}
DEFAULT_STATS_WINDOW = "1h"

CANDLE_INTERVALS: dict[str, int] = {
    "1m": MINUTE_MS,
    "5m": 5 * MINUTE_MS,
    "15m": 15 * MINUTE_MS,
    "1h": HOUR_MS,
    "4h": 4 * HOUR_MS,
}
DEFAULT_CANDLE_INTERVAL = "1m"
MAX_CANDLES = 500

DEFAULT_HISTORY_LIMIT = 100


def _now_ms() -> int:
    return int(time.time() * 1000)


def _twap_summary(twap: TwapResult | None) -> dict | None:
    if twap is None:
        return None
    return {
        "5m": twap.twap_5m,
        "1h": twap.twap_1h,
        "24h": twap.twap_24h,
        "7d": twap.twap_7d,
        "deviation1h": twap.deviation_1h * 100,
        "deviation24h": twap.deviation_24h * 100,
        "dataPoints": dict(twap.data_points),
    }


def _price_body(node: OracleNode, pair: str) -> dict | None:
    """Latest stored price merged with its signature, None if there is none."""
    entry = node.store.get_price(pair)
    if entry is None:
        return None
    body = entry.to_dict()
    signed = node.get_signed_price(pair)
    if signed is not None and signed.timestamp == entry.timestamp:
        body.update(signed.to_dict())
    return body


def _halted_response(node: OracleNode, pair: str):
    state = node.circuit_breaker.get_state(pair)
    return error_response(
        503,
        "Circuit breaker halted",
        pair=pair,
        circuitBreaker={
            "isHalted": True,
            "haltedAt": state.halted_at,
            "haltUntil": state.halt_until,
            "remainingMs": node.circuit_breaker.get_remaining_halt_time(pair),
            "reason": state.last_trip_reason,
            "tripCount": state.trip_count,
        },
    )


@router.get("/prices")
async def get_prices(node: OracleNode = Depends(get_node)) -> dict:
    """Latest price of every pair with its TWAP and breaker summary."""
    prices = []
    for pair in node.pairs:
        body = _price_body(node, pair)
        if body is None:
            continue
        state = node.circuit_breaker.get_state(pair)
        body["age"] = node.store.get_price_age(pair)
        body["twap"] = _twap_summary(node.get_twap(pair))
        body["circuitBreaker"] = {"isHalted": state.is_halted, "tripCount": state.trip_count}
        prices.append(body)

    return {
        "prices": prices,
        "supportedPairs": node.pairs,
        "timestamp": _now_ms(),
        "providerCount": len(node.fetchers),
        "providers": list(node.fetchers),
        "circuitBreaker": {
            "config": node.circuit_breaker.get_config().to_dict(),
            "states": [s.to_dict() for s in node.circuit_breaker.get_all_states()],
        },
    }


@router.get("/price/{pair}")
async def get_price(
    pair: str,
    node: OracleNode = Depends(get_node),
    settings: ApiSettings = Depends(get_settings),
):
    """
    Latest signed consensus price for a pair.

    A pair whose latest price is older than the heartbeat interval is
    refreshed on demand. Returns 503 while the pair is halted or has no price.
    """
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    if node.circuit_breaker.is_halted(canonical):
        return _halted_response(node, canonical)

    if node.store.is_stale(canonical, settings.heartbeat_interval_ms):
        logger.debug(f"{canonical}: Price stale, refreshing on demand")
        update = await node.get_aggregated_price(canonical)
        if update.halted:
            return _halted_response(node, canonical)

    body = _price_body(node, canonical)
    if body is None:
        return error_response(503, "Price temporarily unavailable", pair=canonical)

    state = node.circuit_breaker.get_state(canonical)
    body["twap"] = _twap_summary(node.get_twap(canonical))
    body["circuitBreaker"] = {"isHalted": False, "tripCount": state.trip_count}
    return body


@router.get("/price/{pair}/history")
async def get_history(
    pair: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1),
    node: OracleNode = Depends(get_node),
):
    """Most recent history entries, oldest first."""
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    history = [
        {
            "price": e.value,
            "scaledPrice": str(e.price.scaled_price),
            "timestamp": e.timestamp,
            "sources": list(e.price.sources),
        }
        for e in node.store.get_history(canonical, limit)
    ]
    return {
        "pair": canonical,
        "history": history,
        "count": len(history),
        "twap": _twap_summary(node.get_twap(canonical)),
    }


@router.get("/price/{pair}/twap")
async def get_twap(pair: str, node: OracleNode = Depends(get_node)):
    """TWAP by window, plus the fixed-point block submitted to the ledger."""
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    twap = node.get_twap(canonical)
    if twap is None:
        return error_response(503, "Price temporarily unavailable", pair=canonical)

    windows = {
        "5m": (twap.twap_5m, None),
        "1h": (twap.twap_1h, twap.deviation_1h),
        "24h": (twap.twap_24h, twap.deviation_24h),
        "7d": (twap.twap_7d, None),
    }
    return {
        "pair": canonical,
        "currentPrice": twap.current_price,
        "twap": {
            name: {
                "value": value,
                "deviation": deviation * 100 if deviation is not None else None,
                "dataPoints": twap.data_points.get(name, 0),
            }
            for name, (value, deviation) in windows.items()
        },
        "volatility24h": twap.volatility_24h,
        "ledger": twap.to_ledger_dict(),
        "timestamp": twap.timestamp,
    }


@router.get("/price/{pair}/stats")
async def get_stats(
    pair: str,
    window: str = DEFAULT_STATS_WINDOW,
    node: OracleNode = Depends(get_node),
):
    """High/low/volatility and trend; unknown windows fall back to 1h."""
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    if window not in STATS_WINDOWS:
        window = DEFAULT_STATS_WINDOW
    stats = node.store.get_stats(canonical, STATS_WINDOWS[window])
    if stats is None:
        return error_response(503, "Insufficient data for statistics", pair=canonical)

    trend = node.store.get_trend(canonical)
    return {
        "pair": canonical,
        "window": window,
        "stats": stats.to_dict(),
        "trend": trend.to_dict() if trend else None,
        "timestamp": _now_ms(),
    }


@router.get("/price/{pair}/candles")
async def get_candles(
    pair: str,
    interval: str = DEFAULT_CANDLE_INTERVAL,
    limit: int = Query(100, ge=1),
    node: OracleNode = Depends(get_node),
):
    """OHLC candles; unknown intervals fall back to 1m, at most 500 candles."""
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    if interval not in CANDLE_INTERVALS:
        interval = DEFAULT_CANDLE_INTERVAL
    candles = node.store.get_candles(canonical, CANDLE_INTERVALS[interval], min(limit, MAX_CANDLES))
    return {
        "pair": canonical,
        "interval": interval,
        "candles": [c.to_dict() for c in candles],
        "count": len(candles),
        "timestamp": _now_ms(),
    }


@router.get("/price/{pair}/analysis")
async def get_analysis(pair: str, node: OracleNode = Depends(get_node)):
    """Everything known about a pair in one document."""
    canonical = resolve_pair(node, pair)
    if canonical is None:
        return unsupported_pair(node)

    entry = node.store.get_price(canonical)
    if entry is None:
        return error_response(503, "Price temporarily unavailable", pair=canonical)

    store = node.store
    breaker = node.circuit_breaker
    stats = {name: store.get_stats(canonical, STATS_WINDOWS[name]) for name in ("5m", "1h", "24h")}
    trend = store.get_trend(canonical)
    twap = node.get_twap(canonical)

    return {
        "pair": canonical,
        "currentPrice": {
            "price": entry.value,
            "scaledPrice": str(entry.price.scaled_price),
            "timestamp": entry.timestamp,
            "sources": list(entry.price.sources),
            "age": store.get_price_age(canonical),
        },
        "stats": {name: s.to_dict() if s else None for name, s in stats.items()},
        "trend": trend.to_dict() if trend else None,
        "twap": twap.to_dict() if twap else None,
        "movingAverages": node.get_moving_averages(canonical),
        "circuitBreaker": {
            **breaker.get_state(canonical).to_dict(),
            "remainingMs": breaker.get_remaining_halt_time(canonical),
            "config": breaker.get_config().to_dict(),
        },
        "charts": {
            "candles1m": [c.to_dict() for c in store.get_candles(canonical, MINUTE_MS, 60)],
            "candles5m": [c.to_dict() for c in store.get_candles(canonical, 5 * MINUTE_MS, 100)],
        },
        "historyCount": len(store.get_history(canonical)),
        "timestamp": _now_ms(),
    }
