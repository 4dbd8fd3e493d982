"""Unit tests for OracleNode."""

import pytest

from aleo_oracle.src.CircuitBreaker import CircuitBreaker, CircuitBreakerConfig
from aleo_oracle.src.ConsensusPrice import PriceObservation
from aleo_oracle.src.fetchers import BaseFetcher
from aleo_oracle.src.OracleNode import OracleNode
from aleo_oracle.src.PriceAggregator import PriceAggregator
from aleo_oracle.src.Signer import OracleSigner


class QuoteFetcher(BaseFetcher):
    """Fetcher serving prices set by the test."""

    def __init__(self, name: str, prices: dict[str, float | None], healthy: bool = True):
        super().__init__()
        self.name = name
        self.prices = prices
        self.healthy = healthy

    def get_symbol(self, pair: str) -> str | None:
        return pair if pair in self.prices else None

    async def fetch(self, pair: str) -> float | None:
        return self.prices[pair]

    async def health_check(self) -> bool:
        return self.healthy


def make_fetchers(eth_prices: list[float | None]) -> dict[str, QuoteFetcher]:
    return {
        f"ex{i}": QuoteFetcher(f"ex{i}", {"ETH/USD": price, "BTC/USD": 65000.0 + i})
        for i, price in enumerate(eth_prices)
    }


def make_node(eth_prices: list[float | None], **kwargs) -> OracleNode:
    return OracleNode(["ETH/USD", "BTC/USD"], make_fetchers(eth_prices), **kwargs)


def set_eth(node: OracleNode, price: float) -> None:
    for fetcher in node.fetchers.values():
        fetcher.prices["ETH/USD"] = price


class TestOracleNodeInit:
    """Test construction."""

    def test_requires_pairs(self) -> None:
        with pytest.raises(ValueError, match="trading pair"):
            OracleNode([], make_fetchers([1.0]))

    def test_requires_fetchers(self) -> None:
        with pytest.raises(ValueError, match="price source"):
            OracleNode(["ETH/USD"], {})

    def test_defaults(self) -> None:
        node = make_node([1.0, 1.0, 1.0])
        assert node.supports_pair("ETH/USD")
        assert not node.supports_pair("SOL/USD")
        assert node.source_manager.sources == ["ex0", "ex1", "ex2"]
        assert not node.signer.is_signing_enabled()


class TestOracleNodePipeline:
    """Test aggregation, breaker, storage and signing."""

    async def test_accepted_price_stored_and_signed(self) -> None:
        signer = OracleSigner(operator_address="aleo1operator", private_key="operator-secret")
        node = make_node([3450.12, 3451.50, 3449.80, 3450.90, 3452.00], signer=signer)

        update = await node.get_aggregated_price("ETH/USD")

        assert update.accepted
        assert not update.halted
        assert update.consensus.price == 3450.90
        assert update.consensus.scaled_price == 345090000000
        assert update.consensus.source_count == 5

        entry = node.store.get_price("ETH/USD")
        assert entry.value == 3450.90
        assert entry.signature == update.signed.signature
        assert entry.operator_address == "aleo1operator"
        assert signer.verify_signature(node.get_signed_price("ETH/USD"))

    async def test_insufficient_sources_not_stored(self) -> None:
        node = make_node([3450.0, None, None])
        update = await node.get_aggregated_price("ETH/USD")

        assert not update.accepted
        assert update.aggregation.error == "insufficient_sources"
        assert update.check is None
        assert node.store.get_price("ETH/USD") is None

    async def test_outlier_excluded(self) -> None:
        node = make_node([3450.0, 3451.0, 3449.0, 9999.0])
        update = await node.get_aggregated_price("ETH/USD")

        assert update.consensus.price == 3450.0
        assert "ex3" not in update.consensus.sources

    async def test_breaker_trip_blocks_storage(self) -> None:
        node = make_node([100.0, 100.0, 100.0])
        await node.get_aggregated_price("ETH/USD")

        set_eth(node, 120.0)
        update = await node.get_aggregated_price("ETH/USD")

        assert update.halted
        assert not update.accepted
        assert node.circuit_breaker.is_halted("ETH/USD")
        assert node.store.get_price("ETH/USD").value == 100.0
        assert len(node.store.get_history("ETH/USD")) == 1

    async def test_halted_pair_rejects_normal_prices(self) -> None:
        node = make_node([100.0, 100.0, 100.0])
        node.circuit_breaker.force_halt("ETH/USD")

        update = await node.get_aggregated_price("ETH/USD")
        assert update.halted
        assert "halted" in update.check.reason

    async def test_disabled_breaker_accepts_jumps(self) -> None:
        breaker = CircuitBreaker(CircuitBreakerConfig(enabled=False))
        node = make_node([100.0, 100.0, 100.0], circuit_breaker=breaker)
        await node.get_aggregated_price("ETH/USD")

        set_eth(node, 200.0)
        assert (await node.get_aggregated_price("ETH/USD")).accepted

    async def test_fetch_cycle_updates_every_pair(self) -> None:
        node = make_node([3450.0, 3451.0, 3452.0])
        updates = await node.fetch_cycle()

        assert set(updates) == {"ETH/USD", "BTC/USD"}
        assert all(u.accepted for u in updates.values())
        assert node.cycles == 1
        assert node.store.get_price("BTC/USD").value == 65001.0

    async def test_fetch_cycle_records_source_health(self) -> None:
        node = make_node([3450.0, 3451.0, 3452.0])
        node.fetchers["ex2"].prices = {"ETH/USD": None, "BTC/USD": None}

        await node.fetch_cycle()

        assert node.source_manager.get_source_status("ex0").total_successes == 1
        assert node.source_manager.get_source_status("ex2").consecutive_failures == 1

    async def test_per_pair_minimum(self) -> None:
        aggregator = PriceAggregator(min_sources=3, min_sources_overrides={"ETH/USD": 2})
        node = make_node([3450.0, 3451.0], aggregator=aggregator)
        updates = await node.fetch_cycle()

        assert updates["ETH/USD"].accepted
        assert not updates["BTC/USD"].accepted

    async def test_process_observations_directly(self) -> None:
        node = make_node([1.0, 1.0, 1.0])
        observations = {
            "a": PriceObservation("ETH/USD", 3450.0, 1, "a"),
            "b": PriceObservation("ETH/USD", 3452.0, 1, "b"),
            "c": PriceObservation("ETH/USD", 3454.0, 1, "c"),
            "d": None,
        }
        update = await node.process_observations("ETH/USD", observations)
        assert update.consensus.price == 3452.0
        assert update.consensus.sources == ("a", "b", "c")


class TestOracleNodeTwap:
    """Test TWAP access."""

    async def test_no_price_no_twap(self) -> None:
        assert make_node([1.0, 1.0, 1.0]).get_twap("ETH/USD") is None

    async def test_twap_from_history(self) -> None:
        node = make_node([3450.0, 3450.0, 3450.0])
        await node.fetch_cycle()

        twap = node.get_twap("ETH/USD")
        assert twap.current_price == 3450.0
        assert twap.twap_1h == 3450.0
        assert twap.deviation_1h == 0

    async def test_moving_averages(self) -> None:
        node = make_node([3450.0, 3450.0, 3450.0])
        assert node.get_moving_averages("ETH/USD") is None

        await node.fetch_cycle()
        set_eth(node, 3460.0)
        await node.fetch_cycle()

        averages = node.get_moving_averages("ETH/USD")
        assert averages["sma1h"] == 3455.0
        assert averages["sma24h"] == 3455.0
        # two points: multiplier 2/3, 3450 + (3460 - 3450) * 2/3
        assert averages["ema12"] == pytest.approx(3456.6667, abs=1e-3)


class TestOracleNodeHousekeeping:
    """Test probes, stats and scheduling."""

    async def test_probe_sources(self) -> None:
        node = make_node([1.0, 1.0, 1.0])
        node.fetchers["ex1"].healthy = False

        results = await node.probe_sources()

        assert results == {"ex0": True, "ex1": False, "ex2": True}
        assert node.source_manager.get_healthy_sources() == ["ex0", "ex2"]

    async def test_log_stats(self) -> None:
        node = make_node([1.0, 1.0, 1.0])
        await node.fetch_cycle()
        node.log_stats()

    def test_scheduler_jobs(self) -> None:
        scheduler = make_node([1.0]).build_scheduler(fetch_period=5)
        assert set(scheduler.jobs) == {"fetch", "probe", "stats"}
        assert scheduler.jobs["fetch"].interval == 5
        assert not scheduler.jobs["stats"].run_immediately
