"""BatchPriceCache: Short-lived cache for batch-quoted exchange prices.

Rate-limited aggregator APIs (CoinGecko's free tier) are queried once for
every tracked coin and the result is served to each per-pair request from
this cache. A rate-limit response puts the cache into a cooldown during
which no request is made and the last known prices are served instead.

Each fetcher owns its cache instance, so several configurations can
coexist in one process (and in tests).

.. code-block:: python

    >>> cache = BatchPriceCache(ttl_seconds=60, cooldown_seconds=120)
    >>> cache.update({"ethereum": 3450.12})
    >>> cache.get("ethereum")
    3450.12
    >>> cache.is_fresh()
    True
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class BatchPriceCache:
    """TTL cache with rate-limit cooldown and request coalescing.

    :ivar ttl_seconds: Age after which a refresh is attempted.
    :ivar cooldown_seconds: Pause applied after a rate-limit response.
    :ivar max_age_seconds: Age after which cached prices are no longer served.
    """

    DEFAULT_TTL_SECONDS = 60.0
    DEFAULT_COOLDOWN_SECONDS = 120.0
    DEFAULT_MAX_AGE_SECONDS = 300.0

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.cooldown_seconds = cooldown_seconds
        self.max_age_seconds = max_age_seconds
        self._prices: dict[str, float] = {}
        self._timestamp: float = 0.0
        self._cooldown_until: float = 0.0
        self._pending: asyncio.Future[None] | None = None

    @property
    def timestamp_ms(self) -> int:
        """Time of the last successful refresh in milliseconds (0 if never)."""
        return int(self._timestamp * 1000)

    def update(self, prices: dict[str, float]) -> None:
        """Replace the cached prices.

        :param prices: Mapping of key (e.g. coin id) to price.
        """
        self._prices = dict(prices)
        self._timestamp = time.time()
        logger.debug(f"Batch price cache updated with {len(prices)} prices")

    def get(self, key: str) -> float | None:
        """Get a cached price if it is not too old to serve.

        Prices older than the TTL are still served until max_age_seconds,
        which covers cooldowns and failed refreshes.

        :param key: Cache key.
        :returns: Cached price, or None if missing or older than max_age_seconds.
        """
        if key not in self._prices:
            return None
        age = self.get_age()
        if age is None or age > self.max_age_seconds:
            return None
        return self._prices[key]

    def get_age(self) -> float | None:
        """Get the age of the cached prices in seconds.

        :returns: Age in seconds, or None if the cache was never filled.
        """
        if self._timestamp == 0.0:
            return None
        return time.time() - self._timestamp

    def is_fresh(self) -> bool:
        """Check whether the cache is younger than the TTL."""
        age = self.get_age()
        return age is not None and age < self.ttl_seconds

    def in_cooldown(self) -> bool:
        """Check whether a rate-limit cooldown is active."""
        return time.time() < self._cooldown_until

    def enter_cooldown(self) -> None:
        """Start a rate-limit cooldown."""
        self._cooldown_until = time.time() + self.cooldown_seconds
        logger.warning(
            f"Rate limit hit, batch price cache entering {self.cooldown_seconds:.0f}s cooldown"
        )

    async def refresh(self, loader: Callable[[], Awaitable[dict[str, float]]]) -> None:
        """Refresh the cache, coalescing concurrent callers onto one request.

        :param loader: Coroutine function returning the new prices.
        :raises Exception: Whatever the loader raised, to every waiting caller.
        """
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load(loader))
        pending = self._pending
        try:
            await asyncio.shield(pending)
        finally:
            if self._pending is pending and pending.done():
                self._pending = None

    async def _load(self, loader: Callable[[], Awaitable[dict[str, float]]]) -> None:
        prices = await loader()
        self.update(prices)
