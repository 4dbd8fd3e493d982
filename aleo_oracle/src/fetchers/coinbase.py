"""Coinbase fetcher.

Endpoint: https://api.coinbase.com/v2/prices/{symbol}/spot
Health: /v2/time
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Fetcher for the Coinbase spot price API.

    Response format: ``{"data": {"base": "ETH", "currency": "USD", "amount": "3450.12"}}``
    """

    name = "coinbase"
    BASE_URL = "https://api.coinbase.com"
    HEALTH_PATH = "/v2/time"
    SYMBOL_MAP = {
        "ETH/USD": "ETH-USD",
        "BTC/USD": "BTC-USD",
        "SOL/USD": "SOL-USD",
        "AVAX/USD": "AVAX-USD",
        "MATIC/USD": "POL-USD",
        "DOT/USD": "DOT-USD",
        "ATOM/USD": "ATOM-USD",
        "LINK/USD": "LINK-USD",
        "UNI/USD": "UNI-USD",
    }

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from Coinbase.

        :param pair: Canonical pair name.
        :returns: Current price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(f"{self.base_url}/v2/prices/{symbol}/spot")
            return float(data["data"]["amount"])
        except FetcherError as e:
            logger.warning(f"[coinbase] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coinbase] Failed to parse response for {pair}: {e}")
            return None
