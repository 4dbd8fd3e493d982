"""Kraken fetcher.

Endpoint: https://api.kraken.com/0/public/Ticker?pair={symbol}
Health: /0/public/Time

Kraken uses its own asset codes (XBT for BTC) and returns the ticker
under a normalized key that differs from the requested symbol
(e.g. ETHUSD -> XETHZUSD), so the first result key is used.
"""

import logging
from typing import Any

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class KrakenFetcher(BaseFetcher):
    """Fetcher for the Kraken public ticker."""

    name = "kraken"
    BASE_URL = "https://api.kraken.com"
    HEALTH_PATH = "/0/public/Time"
    SYMBOL_MAP = {
        "ETH/USD": "ETHUSD",
        "BTC/USD": "XBTUSD",
        "SOL/USD": "SOLUSD",
        "AVAX/USD": "AVAXUSD",
        "MATIC/USD": "POLUSD",
        "DOT/USD": "DOTUSD",
        "ATOM/USD": "ATOMUSD",
        "LINK/USD": "LINKUSD",
        "UNI/USD": "UNIUSD",
    }

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from Kraken.

        :param pair: Canonical pair name.
        :returns: Last trade price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/0/public/Ticker", params={"pair": symbol}
            )

            if data.get("error"):
                logger.warning(f"[kraken] API error for {pair}: {data['error']}")
                return None

            result = data.get("result", {})
            if not result:
                logger.warning(f"[kraken] No result for {pair}")
                return None

            # "c" is the last trade closed: [price, lot volume]
            ticker = next(iter(result.values()))
            return float(ticker["c"][0])

        except FetcherError as e:
            logger.warning(f"[kraken] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"[kraken] Failed to parse response for {pair}: {e}")
            return None

    def is_healthy_response(self, data: Any) -> bool:
        return not data.get("error")
