"""Huobi (HTX) fetcher.

Endpoint: https://api.huobi.pro/market/detail/merged?symbol={symbol}
Health: /v1/common/timestamp
"""

import logging
from typing import Any

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class HuobiFetcher(BaseFetcher):
    """Fetcher for the Huobi merged market ticker.

    Response format: ``{"status": "ok", "tick": {"close": 3450.12, ...}}``
    """

    name = "huobi"
    BASE_URL = "https://api.huobi.pro"
    HEALTH_PATH = "/v1/common/timestamp"
    SYMBOL_MAP = {
        "ETH/USD": "ethusdt",
        "BTC/USD": "btcusdt",
        "SOL/USD": "solusdt",
        "AVAX/USD": "avaxusdt",
        "MATIC/USD": "polusdt",
        "DOT/USD": "dotusdt",
        "ATOM/USD": "atomusdt",
        "LINK/USD": "linkusdt",
        "UNI/USD": "uniusdt",
    }

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from Huobi.

        :param pair: Canonical pair name.
        :returns: Close price of the rolling 24h window or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/market/detail/merged",
                params={"symbol": symbol.lower()},
            )
            if data.get("status") != "ok" or not data.get("tick"):
                logger.warning(f"[huobi] Invalid response for {pair}: {data.get('err-msg')}")
                return None
            return float(data["tick"]["close"])
        except FetcherError as e:
            logger.warning(f"[huobi] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[huobi] Failed to parse response for {pair}: {e}")
            return None

    def is_healthy_response(self, data: Any) -> bool:
        return data.get("status") == "ok"
