"""CoinGecko fetcher.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={ids}&vs_currencies=usd
Health: /api/v3/ping
Rate Limit: ~30 calls/min on the free tier

Unlike the exchange fetchers, CoinGecko is queried once for every tracked
coin; per-pair requests are answered from a :class:`BatchPriceCache`. A
429 response starts a cooldown during which cached prices are served.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..BatchPriceCache import BatchPriceCache
from ..ConsensusPrice import PriceObservation
from .base import BaseFetcher, FetcherError, FetcherHTTPError, register_fetcher

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429


@register_fetcher
class CoinGeckoFetcher(BaseFetcher):
    """Batching, caching fetcher for the CoinGecko simple price API.

    :ivar cache: Batch cache shared by every pair served by this instance.
    """

    name = "coingecko"
    BASE_URL = "https://api.coingecko.com"
    HEALTH_PATH = "/api/v3/ping"

    # CoinGecko uses coin ids instead of ticker symbols
    SYMBOL_MAP = {
        "ETH/USD": "ethereum",
        "BTC/USD": "bitcoin",
        "ALEO/USD": "aleo",
        "SOL/USD": "solana",
        "AVAX/USD": "avalanche-2",
        "MATIC/USD": "matic-network",
        "DOT/USD": "polkadot",
        "ATOM/USD": "cosmos",
        "LINK/USD": "chainlink",
        "UNI/USD": "uniswap",
    }

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        cache: BatchPriceCache | None = None,
    ):
        """Initialize with an optional injected cache."""
        super().__init__(base_url=base_url, timeout=timeout, client=client)
        self.cache = cache if cache is not None else BatchPriceCache()

    @property
    def supports_batch(self) -> bool:
        """A single request covers every tracked coin."""
        return True

    async def fetch(self, pair: str) -> float | None:
        """Fetch price from CoinGecko via the batch cache.

        :param pair: Canonical pair name.
        :returns: Cached or freshly fetched price, or None.
        """
        coin_id = self.get_symbol(pair)
        if not coin_id:
            return None
        await self._ensure_fresh()
        return self.cache.get(coin_id)

    async def fetch_price(self, pair: str) -> PriceObservation | None:
        """Fetch one observation, stamped with the time the batch was quoted.

        :param pair: Canonical pair name.
        :returns: PriceObservation or None.
        """
        if not self.supports_pair(pair):
            logger.debug(f"[coingecko] Unsupported pair {pair}")
            return None
        price = await self.fetch(pair)
        return self._observe(pair, price, timestamp=self.cache.timestamp_ms)

    async def fetch_batch(self, pairs: list[str]) -> dict[str, PriceObservation | None]:
        """Refresh the cache once and answer every pair from it.

        :param pairs: Canonical pair names.
        :returns: Dict mapping pair to observation or None.
        """
        await self._ensure_fresh()
        results: dict[str, PriceObservation | None] = {}
        for pair in pairs:
            coin_id = self.get_symbol(pair)
            price = self.cache.get(coin_id) if coin_id else None
            results[pair] = self._observe(pair, price, timestamp=self.cache.timestamp_ms)
        return results

    async def _ensure_fresh(self) -> None:
        """Refresh the cache unless it is fresh or cooling down."""
        if self.cache.in_cooldown() or self.cache.is_fresh():
            return

        try:
            await self.cache.refresh(self._fetch_all_prices)
        except FetcherHTTPError as e:
            if e.status_code == HTTP_TOO_MANY_REQUESTS:
                self.cache.enter_cooldown()
            logger.warning(f"[coingecko] Batch fetch failed: {e}")
        except FetcherError as e:
            logger.warning(f"[coingecko] Batch fetch failed: {e}")
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coingecko] Failed to parse batch response: {e}")

    async def _fetch_all_prices(self) -> dict[str, float]:
        """Query USD prices for every known coin id in one request.

        :returns: Mapping of coin id to USD price (coins without a quote are omitted).
        """
        coin_ids = list(self.SYMBOL_MAP.values())
        data = await self._get_json(
            f"{self.base_url}/api/v3/simple/price",
            params={"ids": ",".join(coin_ids), "vs_currencies": "usd"},
        )
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response type {type(data).__name__}")

        prices: dict[str, float] = {}
        for coin_id in coin_ids:
            quote = data.get(coin_id) or {}
            if quote.get("usd"):
                prices[coin_id] = float(quote["usd"])
        return prices

    def is_healthy_response(self, data: Any) -> bool:
        return "gecko_says" in data
