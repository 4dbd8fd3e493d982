"""Unit tests for BatchPriceCache."""

import asyncio
from unittest.mock import patch

import pytest

from aleo_oracle.src.BatchPriceCache import BatchPriceCache


def at(seconds: float):
    return patch("aleo_oracle.src.BatchPriceCache.time.time", return_value=seconds)


class TestBatchPriceCacheAge:
    """Test TTL, max age and cooldown handling."""

    def test_empty_cache(self) -> None:
        cache = BatchPriceCache()
        assert cache.get("ethereum") is None
        assert cache.get_age() is None
        assert not cache.is_fresh()
        assert cache.timestamp_ms == 0

    def test_fresh_within_ttl(self) -> None:
        cache = BatchPriceCache(ttl_seconds=60)
        with at(1000.0):
            cache.update({"ethereum": 3450.0})
        with at(1059.0):
            assert cache.is_fresh()
            assert cache.get("ethereum") == 3450.0
        assert cache.timestamp_ms == 1_000_000

    def test_stale_prices_served_until_max_age(self) -> None:
        """Past the TTL a refresh is due, but prices are still served."""
        cache = BatchPriceCache(ttl_seconds=60, max_age_seconds=300)
        with at(1000.0):
            cache.update({"ethereum": 3450.0})
        with at(1200.0):
            assert not cache.is_fresh()
            assert cache.get("ethereum") == 3450.0
        with at(1301.0):
            assert cache.get("ethereum") is None

    def test_cooldown(self) -> None:
        cache = BatchPriceCache(cooldown_seconds=120)
        with at(1000.0):
            cache.enter_cooldown()
            assert cache.in_cooldown()
        with at(1120.0):
            assert not cache.in_cooldown()

    def test_update_replaces_prices(self) -> None:
        cache = BatchPriceCache()
        cache.update({"ethereum": 1.0, "bitcoin": 2.0})
        cache.update({"bitcoin": 3.0})
        assert cache.get("ethereum") is None
        assert cache.get("bitcoin") == 3.0


class TestBatchPriceCacheRefresh:
    """Test request coalescing."""

    async def test_refresh_updates_cache(self) -> None:
        cache = BatchPriceCache()

        async def loader() -> dict[str, float]:
            return {"ethereum": 3450.0}

        await cache.refresh(loader)
        assert cache.get("ethereum") == 3450.0

    async def test_concurrent_refreshes_share_one_load(self) -> None:
        cache = BatchPriceCache()
        calls = 0

        async def loader() -> dict[str, float]:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"ethereum": 3450.0}

        await asyncio.gather(*(cache.refresh(loader) for _ in range(5)))
        assert calls == 1
        assert cache.get("ethereum") == 3450.0

    async def test_loader_error_propagates_and_clears(self) -> None:
        cache = BatchPriceCache()

        async def failing() -> dict[str, float]:
            raise ValueError("bad payload")

        with pytest.raises(ValueError, match="bad payload"):
            await cache.refresh(failing)

        async def loader() -> dict[str, float]:
            return {"bitcoin": 65000.0}

        await cache.refresh(loader)
        assert cache.get("bitcoin") == 65000.0
