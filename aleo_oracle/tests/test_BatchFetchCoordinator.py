"""Unit tests for BatchFetchCoordinator."""

import asyncio

from aleo_oracle.src.BatchFetchCoordinator import BatchFetchCoordinator
from aleo_oracle.src.ConsensusPrice import PriceObservation
from aleo_oracle.src.SourceManager import SourceManager
from aleo_oracle.src.fetchers import BaseFetcher


class StaticFetcher(BaseFetcher):
    """Fetcher returning fixed prices without touching the network."""

    def __init__(self, name: str, prices: dict, delay: float = 0.0, batch: bool = False, error=None):
        super().__init__()
        self.name = name
        self.prices = prices
        self.delay = delay
        self.batch = batch
        self.error = error
        self.calls: list = []

    def get_symbol(self, pair: str) -> str | None:
        return pair if pair in self.prices else None

    @property
    def supports_batch(self) -> bool:
        return self.batch

    async def fetch(self, pair: str) -> float | None:
        self.calls.append(pair)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.prices[pair]

    async def fetch_batch(self, pairs: list[str]) -> dict[str, PriceObservation | None]:
        self.calls.append(tuple(pairs))
        if self.error is not None:
            raise self.error
        return {pair: self._observe(pair, self.prices.get(pair)) for pair in pairs}


class TestBatchFetchCoordinator:
    """Test fan-out and result grouping."""

    async def test_groups_results_by_pair(self) -> None:
        coordinator = BatchFetchCoordinator(
            {
                "a": StaticFetcher("a", {"ETH/USD": 3450.0, "BTC/USD": 65000.0}),
                "b": StaticFetcher("b", {"ETH/USD": 3451.0}),
            }
        )
        results = await coordinator.fetch_all(["ETH/USD", "BTC/USD"])

        assert set(results["ETH/USD"]) == {"a", "b"}
        assert results["ETH/USD"]["b"].price == 3451.0
        assert set(results["BTC/USD"]) == {"a"}

    async def test_empty_pairs(self) -> None:
        coordinator = BatchFetchCoordinator({"a": StaticFetcher("a", {"ETH/USD": 1.0})})
        assert await coordinator.fetch_all([]) == {}

    async def test_pair_without_sources(self) -> None:
        coordinator = BatchFetchCoordinator({"a": StaticFetcher("a", {"ETH/USD": 1.0})})
        assert await coordinator.fetch_all(["FOO/USD"]) == {"FOO/USD": {}}
        assert coordinator.sources_for("ETH/USD") == ["a"]

    async def test_batch_source_called_once(self) -> None:
        batch = StaticFetcher("gecko", {"ETH/USD": 3450.0, "BTC/USD": 65000.0}, batch=True)
        coordinator = BatchFetchCoordinator({"gecko": batch})

        results = await coordinator.fetch_all(["ETH/USD", "BTC/USD"])
        assert batch.calls == [("ETH/USD", "BTC/USD")]
        assert results["BTC/USD"]["gecko"].price == 65000.0

    async def test_slow_source_times_out(self) -> None:
        """A slow exchange lowers the source count instead of stalling."""
        coordinator = BatchFetchCoordinator(
            {
                "fast": StaticFetcher("fast", {"ETH/USD": 3450.0}),
                "slow": StaticFetcher("slow", {"ETH/USD": 3451.0}, delay=1.0),
            },
            fetch_timeout=0.05,
        )
        results = await coordinator.fetch_pair("ETH/USD")

        assert results["fast"].price == 3450.0
        assert results["slow"] is None

    async def test_raising_source_yields_none(self) -> None:
        coordinator = BatchFetchCoordinator(
            {
                "ok": StaticFetcher("ok", {"ETH/USD": 3450.0}),
                "broken": StaticFetcher("broken", {"ETH/USD": 1.0}, error=RuntimeError("boom")),
                "broken_batch": StaticFetcher(
                    "broken_batch", {"ETH/USD": 1.0}, batch=True, error=RuntimeError("boom")
                ),
            }
        )
        results = await coordinator.fetch_pair("ETH/USD")

        assert results["ok"].price == 3450.0
        assert results["broken"] is None
        assert results["broken_batch"] is None

    async def test_records_outcomes(self) -> None:
        manager = SourceManager(["ok", "bad"])
        coordinator = BatchFetchCoordinator(
            {
                "ok": StaticFetcher("ok", {"ETH/USD": 3450.0}),
                "bad": StaticFetcher("bad", {"ETH/USD": -1.0}),
            },
            source_manager=manager,
        )
        await coordinator.fetch_all(["ETH/USD"])

        assert manager.get_source_status("ok").total_successes == 1
        assert manager.get_source_status("bad").consecutive_failures == 1
