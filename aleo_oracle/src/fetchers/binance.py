"""Binance fetcher.

Binance quotes USDT rather than USD; the USDT price is used as the USD
price for aggregation, outliers caused by a depeg are removed by the
median filter.

Endpoint: https://api.binance.com/api/v3/ticker/price?symbol={symbol}
Health: /api/v3/ping
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BinanceFetcher(BaseFetcher):
    """Fetcher for the Binance spot ticker."""

    name = "binance"
    BASE_URL = "https://api.binance.com"
    HEALTH_PATH = "/api/v3/ping"
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
        """Fetch price from Binance.

        :param pair: Canonical pair name.
        :returns: Current price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/api/v3/ticker/price", params={"symbol": symbol}
            )
            if "price" not in data:
                logger.warning(f"[binance] No price for {symbol}: {data}")
                return None
            return float(data["price"])
        except FetcherError as e:
            logger.warning(f"[binance] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[binance] Failed to parse response for {pair}: {e}")
            return None
