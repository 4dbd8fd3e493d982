"""CryptoCompare fetcher.

Endpoint: https://min-api.cryptocompare.com/data/price?fsym={base}&tsyms={quote}

CryptoCompare takes the base and quote symbols directly, so any
``BASE/QUOTE`` pair is attempted; an unknown symbol comes back as an
error payload and yields None.
"""

import logging

from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CryptoCompareFetcher(BaseFetcher):
    """Fetcher for the CryptoCompare single-price API."""

    name = "cryptocompare"
    BASE_URL = "https://min-api.cryptocompare.com"

    def get_symbol(self, pair: str) -> str | None:
        base, sep, quote = pair.partition("/")
        if not sep or not base or not quote:
            return None
        return pair

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from CryptoCompare.

        :param pair: Canonical pair name.
        :returns: Current price or None on failure.
        """
        if not self.get_symbol(pair):
            return None
        base, _, quote = pair.partition("/")

        try:
            data = await self._get_json(
                f"{self.base_url}/data/price", params={"fsym": base, "tsyms": quote}
            )
            if not data or data.get("Response") == "Error":
                logger.warning(f"[cryptocompare] Invalid response for {pair}: {data.get('Message')}")
                return None
            return float(data[quote])
        except FetcherError as e:
            logger.warning(f"[cryptocompare] Failed to fetch {pair}: {e}")
            return None
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[cryptocompare] Failed to parse response for {pair}: {e}")
            return None

    async def health_check(self) -> bool:
        """Probe by quoting BTC/USD, CryptoCompare has no status endpoint."""
        return await self.fetch("BTC/USD") is not None
