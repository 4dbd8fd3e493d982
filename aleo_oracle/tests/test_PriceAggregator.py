"""Unit tests for PriceAggregator."""

import math

import pytest

from aleo_oracle.src.PriceAggregator import (
    AggregationResult,
    PriceAggregator,
    calculate_median,
    is_outlier,
    remove_outliers,
)
from aleo_oracle.src.TradingPair import scale_price


class TestCalculateMedian:
    """Test the median helper."""

    def test_empty(self) -> None:
        """Empty input yields 0."""
        assert calculate_median([]) == 0

    def test_odd(self) -> None:
        assert calculate_median([3.0, 1.0, 2.0]) == 2.0

    def test_even_averages_middles(self) -> None:
        """Even length averages the two central values."""
        assert calculate_median([1, 3, 5, 7]) == 4.0

    def test_single(self) -> None:
        assert calculate_median([42.0]) == 42.0

    def test_odd_sorted(self) -> None:
        assert calculate_median([1, 3, 5]) == 3

    def test_duplicates(self) -> None:
        assert calculate_median([100, 100, 100, 200]) == 100

    @pytest.mark.parametrize(
        "shuffled",
        [
            [5, 1, 3],
            [7, 1, 5, 3],
            [200, 100, 100, 100],
            [3452.00, 3450.12, 3450.90, 3449.80, 3451.50],
        ],
    )
    def test_order_independent(self, shuffled: list[float]) -> None:
        """Unsorted input yields the same median as sorted input."""
        assert calculate_median(shuffled) == calculate_median(sorted(shuffled))


class TestOutliers:
    """Test outlier detection helpers."""

    def test_within_threshold(self) -> None:
        assert not is_outlier(104.0, 100.0, 0.05)

    def test_exactly_at_threshold_kept(self) -> None:
        """Deviation equal to the threshold is kept."""
        assert not is_outlier(105.0, 100.0, 0.05)

    def test_beyond_threshold(self) -> None:
        assert is_outlier(106.0, 100.0, 0.05)
        assert is_outlier(94.0, 100.0, 0.05)

    def test_zero_median_never_outlier(self) -> None:
        assert not is_outlier(1000.0, 0, 0.05)

    def test_remove_outliers(self) -> None:
        assert remove_outliers([50, 95, 100, 105, 200], 100) == [95, 100, 105]

    def test_remove_outliers_zero_median_unchanged(self) -> None:
        """A zero median leaves the input unchanged."""
        prices = [1.0, 50.0, 1000.0]
        assert remove_outliers(prices, 0) == prices


class TestPriceAggregatorInit:
    """Test PriceAggregator initialization."""

    def test_default_values(self) -> None:
        """Default values should be reasonable."""
        agg = PriceAggregator()
        assert agg.min_sources == 3
        assert agg.outlier_threshold == 0.05
        assert agg.get_min_sources("ALEO/USD") == 2

    def test_custom_values(self) -> None:
        """Custom values should be stored."""
        agg = PriceAggregator(
            min_sources=4,
            outlier_threshold=0.1,
            min_sources_overrides={"SOL/USD": 2},
        )
        assert agg.min_sources == 4
        assert agg.outlier_threshold == 0.1
        assert agg.get_min_sources("SOL/USD") == 2
        assert agg.get_min_sources("ALEO/USD") == 4
        assert agg.get_min_sources(None) == 4

    def test_invalid_min_sources(self) -> None:
        """min_sources < 1 should raise ValueError."""
        with pytest.raises(ValueError, match="min_sources must be at least 1"):
            PriceAggregator(min_sources=0)

    def test_invalid_outlier_threshold(self) -> None:
        """outlier_threshold <= 0 should raise ValueError."""
        with pytest.raises(ValueError, match="outlier_threshold must be positive"):
            PriceAggregator(outlier_threshold=0)

        with pytest.raises(ValueError, match="outlier_threshold must be positive"):
            PriceAggregator(outlier_threshold=-0.05)

    def test_invalid_override(self) -> None:
        with pytest.raises(ValueError, match="override for ETH/USD"):
            PriceAggregator(min_sources_overrides={"ETH/USD": 0})


class TestPriceAggregatorBasicAggregation:
    """Test basic aggregation scenarios."""

    def test_simple_median_odd(self) -> None:
        """Median of odd number of values."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate({"a": 100.0, "b": 101.0, "c": 102.0})

        assert result.success
        assert result.price == 101.0
        assert result.metadata["count"] == 3

    def test_simple_median_even(self) -> None:
        """Median of even number of values."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate({"a": 100.0, "b": 101.0})

        assert result.success
        assert result.price == 100.5
        assert result.metadata["count"] == 2

    def test_single_source_with_min_1(self) -> None:
        """Single source should work with min_sources=1."""
        agg = PriceAggregator(min_sources=1)
        result = agg.aggregate({"a": 100.0})

        assert result.success
        assert result.price == 100.0

    def test_sources_list_in_metadata(self) -> None:
        """Metadata lists the contributing sources in input order."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate({"kraken": 100.0, "binance": 100.2, "okx": 99.9})

        assert result.metadata["sources"] == ["kraken", "binance", "okx"]
        assert result.metadata["dropped"] == {}
        assert result.metadata["initial_median"] == 100.0

    def test_eth_usd_scenario(self) -> None:
        """Five agreeing exchanges produce the middle quote."""
        agg = PriceAggregator()
        result = agg.aggregate(
            {
                "binance": 3450.12,
                "coinbase": 3451.50,
                "kraken": 3449.80,
                "okx": 3450.90,
                "bybit": 3452.00,
            },
            pair="ETH/USD",
        )

        assert result.success
        assert result.price == 3450.90
        assert result.metadata["count"] == 5
        assert scale_price(result.price) == 345090000000


class TestPriceAggregatorFiltering:
    """Test invalid price filtering and outlier removal."""

    def test_none_zero_negative_nan_filtered(self) -> None:
        """Absent and non-positive quotes do not count."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate(
            {"a": 100.0, "b": None, "c": 0.0, "d": -5.0, "e": math.nan, "f": 102.0}
        )

        assert result.success
        assert result.price == 101.0
        assert result.metadata["sources"] == ["a", "f"]

    def test_outlier_dropped(self) -> None:
        """A quote beyond the threshold is dropped and reported."""
        agg = PriceAggregator(min_sources=2)
        result = agg.aggregate({"a": 100.0, "b": 100.5, "rogue": 200.0})

        assert result.success
        assert result.price == 100.25
        assert result.metadata["dropped"] == {"rogue": 200.0}

    def test_price_changes_unaffected_by_single_outlier(self) -> None:
        """One manipulated exchange cannot move the median far."""
        agg = PriceAggregator(min_sources=3)
        result = agg.aggregate(
            {"a": 3450.0, "b": 3451.0, "c": 3449.0, "d": 3452.0, "manipulated": 5000.0}
        )

        assert result.success
        assert result.price == 3450.5
        assert "manipulated" in result.metadata["dropped"]


class TestPriceAggregatorFailures:
    """Test failure results."""

    def test_insufficient_sources(self) -> None:
        agg = PriceAggregator(min_sources=3)
        result = agg.aggregate({"a": 100.0, "b": None, "c": 101.0})

        assert not result.success
        assert result.error == "insufficient_sources"
        assert result.metadata["available"] == 2
        assert result.metadata["required"] == 3

    def test_per_pair_minimum(self) -> None:
        """ALEO/USD needs two sources by default, other pairs three."""
        agg = PriceAggregator()
        prices = {"a": 0.25, "b": 0.251}

        assert agg.aggregate(prices, pair="ALEO/USD").success
        assert agg.aggregate(prices, pair="ETH/USD").error == "insufficient_sources"

    def test_too_many_outliers(self) -> None:
        """The minimum is re-checked after filtering."""
        agg = PriceAggregator(min_sources=3, outlier_threshold=0.05)
        result = agg.aggregate({"a": 100.0, "b": 100.0, "c": 150.0, "d": 50.0})

        assert not result.success
        assert result.error == "too_many_outliers"
        assert result.metadata["available"] == 2
        assert set(result.metadata["dropped"]) == {"c", "d"}

    def test_empty_input(self) -> None:
        agg = PriceAggregator(min_sources=1)
        result = agg.aggregate({})

        assert result == AggregationResult(
            price=None,
            metadata={"error": "insufficient_sources", "available": 0, "required": 1},
        )

    def test_error_is_none_on_success(self) -> None:
        agg = PriceAggregator(min_sources=1)
        assert agg.aggregate({"a": 1.0}).error is None
