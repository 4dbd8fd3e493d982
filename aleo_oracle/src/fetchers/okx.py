"""OKX fetcher.

Endpoint: https://www.okx.com/api/v5/market/ticker?instId={symbol}
Health: /api/v5/public/time
"""

import logging
from typing import Any

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class OKXFetcher(BaseFetcher):
    """Fetcher for the OKX market ticker.

    Response format: ``{"code": "0", "data": [{"instId": "ETH-USDT", "last": "3450.1"}]}``
    """

    name = "okx"
    BASE_URL = "https://www.okx.com"
    HEALTH_PATH = "/api/v5/public/time"
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
        """Fetch price from OKX.

        :param pair: Canonical pair name.
        :returns: Last trade price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/api/v5/market/ticker", params={"instId": symbol}
            )
            if data.get("code") != "0" or not data.get("data"):
                logger.warning(f"[okx] Invalid response for {pair}: {data.get('msg')}")
                return None
            return float(data["data"][0]["last"])
        except FetcherError as e:
            logger.warning(f"[okx] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"[okx] Failed to parse response for {pair}: {e}")
            return None

    def is_healthy_response(self, data: Any) -> bool:
        return data.get("code") == "0"
