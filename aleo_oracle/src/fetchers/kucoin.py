"""KuCoin fetcher.

Endpoint: https://api.kucoin.com/api/v1/market/orderbook/level1?symbol={symbol}
Health: /api/v1/status
"""

import logging
from typing import Any

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)

# KuCoin wraps every response in {"code": "200000", "data": ...}
KUCOIN_SUCCESS_CODE = "200000"


@register_fetcher
class KuCoinFetcher(BaseFetcher):
    """Fetcher for the KuCoin level-1 order book."""

    name = "kucoin"
    BASE_URL = "https://api.kucoin.com"
    HEALTH_PATH = "/api/v1/status"
    SYMBOL_MAP = {
        "ETH/USD": "ETH-USDT",
        "BTC/USD": "BTC-USDT",
        "SOL/USD": "SOL-USDT",
        "AVAX/USD": "AVAX-USDT",
        "MATIC/USD": "POL-USDT",
        "DOT/USD": "DOT-USDT",
        "ATOM/USD": "ATOM-USDT",
        "LINK/USD": "LINK-USDT",
        "UNI/USD": "UNI-USDT",
    }

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from KuCoin.

        :param pair: Canonical pair name.
        :returns: Last trade price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/api/v1/market/orderbook/level1",
                params={"symbol": symbol},
            )
            if data.get("code") != KUCOIN_SUCCESS_CODE or not data.get("data"):
                logger.warning(f"[kucoin] Invalid response for {pair}: {data.get('msg')}")
                return None
            return float(data["data"]["price"])
        except FetcherError as e:
            logger.warning(f"[kucoin] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[kucoin] Failed to parse response for {pair}: {e}")
            return None

    def is_healthy_response(self, data: Any) -> bool:
        return data.get("code") == KUCOIN_SUCCESS_CODE
