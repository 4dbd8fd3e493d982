"""Bybit fetcher.

Endpoint: https://api.bybit.com/v5/market/tickers?category=spot&symbol={symbol}
Health: /v5/market/time
"""

import logging
from typing import Any

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BybitFetcher(BaseFetcher):
    """Fetcher for Bybit v5 spot tickers.

    Response format: ``{"retCode": 0, "result": {"list": [{"lastPrice": "3450.1"}]}}``
    """

    name = "bybit"
    BASE_URL = "https://api.bybit.com"
    HEALTH_PATH = "/v5/market/time"
    SYMBOL_MAP = {
        "ETH/USD": "ETHUSDT",
        "BTC/USD": "BTCUSDT",
        "SOL/USD": "SOLUSDT",
        "AVAX/USD": "AVAXUSDT",
        "MATIC/USD": "POLUSDT",
        "DOT/USD": "DOTUSDT",
        "ATOM/USD": "ATOMUSDT",
        "LINK/USD": "LINKUSDT",
        "UNI/USD": "UNIUSDT",
    }

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from Bybit.

        :param pair: Canonical pair name.
        :returns: Last trade price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/v5/market/tickers",
                params={"category": "spot", "symbol": symbol},
            )
            tickers = (data.get("result") or {}).get("list") or []
            if data.get("retCode") != 0 or not tickers:
                logger.warning(f"[bybit] Invalid response for {pair}: {data.get('retMsg')}")
                return None
            return float(tickers[0]["lastPrice"])
        except FetcherError as e:
            logger.warning(f"[bybit] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"[bybit] Failed to parse response for {pair}: {e}")
            return None

    def is_healthy_response(self, data: Any) -> bool:
        return data.get("retCode") == 0
