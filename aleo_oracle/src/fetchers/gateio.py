"""Gate.io fetcher.

Gate.io is one of the few exchanges listing ALEO, which is why ALEO/USD
needs fewer sources than the other pairs.

Endpoint: https://api.gateio.ws/api/v4/spot/tickers?currency_pair={symbol}
Health: /api/v4/spot/time
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class GateIOFetcher(BaseFetcher):
    """Fetcher for the Gate.io spot tickers endpoint.

    Response format: ``[{"currency_pair": "ETH_USDT", "last": "3450.12", ...}]``
    """

    name = "gateio"
    BASE_URL = "https://api.gateio.ws"
    HEALTH_PATH = "/api/v4/spot/time"
    SYMBOL_MAP = {
        "ETH/USD": "ETH_USDT",
        "BTC/USD": "BTC_USDT",
        "ALEO/USD": "ALEO_USDT",
        "SOL/USD": "SOL_USDT",
        "AVAX/USD": "AVAX_USDT",
        "MATIC/USD": "POL_USDT",
        "DOT/USD": "DOT_USDT",
        "ATOM/USD": "ATOM_USDT",
        "LINK/USD": "LINK_USDT",
        "UNI/USD": "UNI_USDT",
    }

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from Gate.io.

        :param pair: Canonical pair name.
        :returns: Last trade price or None on failure.
        """
        symbol = self.get_symbol(pair)
        if not symbol:
            return None

        try:
            data = await self._get_json(
                f"{self.base_url}/api/v4/spot/tickers",
                params={"currency_pair": symbol},
            )
            if not data:
                logger.warning(f"[gateio] Empty response for {pair}")
                return None
            return float(data[0]["last"])
        except FetcherError as e:
            logger.warning(f"[gateio] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError, IndexError) as e:
            logger.warning(f"[gateio] Failed to parse response for {pair}: {e}")
            return None
