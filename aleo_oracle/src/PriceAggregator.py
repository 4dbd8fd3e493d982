"""PriceAggregator: Median aggregation with outlier detection.

Algorithm:
    1. Filter out None/zero/negative prices
    2. Require the pair's minimum number of sources
    3. Calculate initial median across all valid sources
    4. Exclude outliers (prices deviating > outlier_threshold from initial median)
    5. Re-check the minimum against the filtered set
    6. Return the median of the filtered set

Even-length sets average the two central values. Prices stay floats
throughout; scaling to the ledger's fixed-point form happens later, once.

.. code-block:: python

    >>> aggregator = PriceAggregator(min_sources=2, outlier_threshold=0.05)
    >>> prices = {"binance": 100.0, "kraken": 100.5, "rogue": 200.0}
    >>> result = aggregator.aggregate(prices)
    >>> result.success
    True
    >>> result.price
    100.25
    >>> result.metadata["dropped"]
    {'rogue': 200.0}
"""

from __future__ import annotations

from dataclasses import dataclass
from statistics import median as _median
from typing import Iterable, TypedDict

from .TradingPair import DEFAULT_MIN_SOURCES_OVERRIDES


class AggregationError(TypedDict, total=False):
    """Error information when aggregation fails.

    :ivar error: Error type identifier.
    :ivar available: Number of valid sources available.
    :ivar required: Minimum number of sources required.
    :ivar dropped: Dict of sources dropped as outliers.
    """

    error: str
    available: int
    required: int
    dropped: dict[str, float]


class AggregationMetadata(TypedDict, total=False):
    """Metadata about a successful aggregation.

    :ivar sources: Sources used in final calculation, in input order.
    :ivar dropped: Dict of sources dropped as outliers.
    :ivar count: Number of sources used.
    :ivar initial_median: Median before outlier filtering.
    """

    sources: list[str]
    dropped: dict[str, float]
    count: int
    initial_median: float


@dataclass
class AggregationResult:
    """Result of price aggregation.

    :ivar price: Aggregated price, or None if aggregation failed.
    :ivar metadata: Additional information about the aggregation.
    """

    price: float | None
    metadata: AggregationMetadata | AggregationError

    @property
    def success(self) -> bool:
        """Check if aggregation was successful."""
        return self.price is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation failed."""
        if self.price is None:
            return self.metadata.get("error")
        return None


def calculate_median(prices: Iterable[float]) -> float:
    """Median of a set of prices.

    :param prices: Prices in any order.
    :returns: Median, averaging the two central values for even lengths;
        0 for an empty input.

    .. code-block:: python

        >>> calculate_median([1, 3, 5, 7])
        4.0
        >>> calculate_median([])
        0
    """
    values = list(prices)
    if not values:
        return 0
    return _median(values)


def is_outlier(price: float, median: float, threshold: float) -> bool:
    """Check whether a price deviates from the median by more than threshold.

    :param price: Price to test.
    :param median: Reference median; 0 means no price is an outlier.
    :param threshold: Maximum relative deviation kept (0.05 = 5%).
    :returns: True if the price should be discarded.
    """
    if median == 0:
        return False
    return abs(price - median) / median > threshold


def remove_outliers(prices: list[float], median: float, threshold: float = 0.05) -> list[float]:
    """Drop prices whose relative deviation from the median exceeds threshold.

    :param prices: Prices to filter.
    :param median: Reference median.
    :param threshold: Maximum relative deviation kept (0.05 = 5%).
    :returns: Retained prices in input order; the input unchanged if median is 0.

    .. code-block:: python

        >>> remove_outliers([50, 95, 100, 105, 200], 100)
        [95, 100, 105]
    """
    return [p for p in prices if not is_outlier(p, median, threshold)]


class PriceAggregator:
    """Aggregates prices from multiple sources with outlier detection.

    :ivar min_sources: Default minimum sources required for valid aggregation.
    :ivar outlier_threshold: Max allowed relative deviation from the median.
    :ivar min_sources_overrides: Per-pair minimum source counts.

    .. code-block:: python

        >>> agg = PriceAggregator(min_sources=2, outlier_threshold=0.05)
        >>> result = agg.aggregate({"a": 100.0, "b": 101.0, "c": 99.0})
        >>> result.price
        100.0
    """

    def __init__(
        self,
        min_sources: int = 3,
        outlier_threshold: float = 0.05,
        min_sources_overrides: dict[str, int] | None = None,
    ) -> None:
        """Initialize the aggregator.

        :param min_sources: Minimum number of valid sources required (default 3).
        :param outlier_threshold: Maximum relative deviation from the median
            before a source is considered an outlier (default 0.05 = 5%).
        :param min_sources_overrides: Per-pair minimums, e.g. {"ALEO/USD": 2}.
            Defaults to the built-in overrides for newly listed pairs.
        :raises ValueError: If parameters are invalid.
        """
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        if outlier_threshold <= 0:
            raise ValueError("outlier_threshold must be positive")

        overrides = (
            dict(DEFAULT_MIN_SOURCES_OVERRIDES)
            if min_sources_overrides is None
            else dict(min_sources_overrides)
        )
        for pair, value in overrides.items():
            if value < 1:
                raise ValueError(f"min_sources override for {pair} must be at least 1")

        self.min_sources = min_sources
        self.outlier_threshold = outlier_threshold
        self.min_sources_overrides = overrides

    def get_min_sources(self, pair: str | None) -> int:
        """Minimum source count for a pair.

        :param pair: Canonical pair name, or None for the default.
        :returns: Required number of sources.
        """
        if pair is None:
            return self.min_sources
        return self.min_sources_overrides.get(pair, self.min_sources)

    def aggregate(
        self,
        prices: dict[str, float | None],
        *,
        pair: str | None = None,
    ) -> AggregationResult:
        """Aggregate prices from multiple sources into a single median price.

        :param prices: Dict mapping source name to price (or None if fetch failed).
        :param pair: Canonical pair name used to pick the minimum source count.
        :returns: AggregationResult with price and metadata, or None price with error info.

        .. code-block:: python

            >>> agg = PriceAggregator(min_sources=2)
            >>> result = agg.aggregate({"a": 100.0, "b": 101.0})
            >>> result.success
            True
            >>> result.price
            100.5
        """
        required = self.get_min_sources(pair)

        # Step 1: Filter out invalid prices
        valid: dict[str, float] = {
            k: v for k, v in prices.items() if v is not None and v > 0
        }

        # Step 2: Require enough sources
        if len(valid) < required:
            return AggregationResult(
                price=None,
                metadata={
                    "error": "insufficient_sources",
                    "available": len(valid),
                    "required": required,
                },
            )

        # Step 3: Calculate initial median
        initial_median = calculate_median(valid.values())

        # Step 4: Filter outliers
        filtered: dict[str, float] = {}
        dropped: dict[str, float] = {}

        for source, price in valid.items():
            if is_outlier(price, initial_median, self.outlier_threshold):
                dropped[source] = price
            else:
                filtered[source] = price

        # Step 5: Re-check minimum on the filtered set
        if len(filtered) < required:
            return AggregationResult(
                price=None,
                metadata={
                    "error": "too_many_outliers",
                    "available": len(filtered),
                    "required": required,
                    "dropped": dropped,
                },
            )

        # Step 6: Calculate final median from filtered set
        final_median = calculate_median(filtered.values())

        return AggregationResult(
            price=final_median,
            metadata={
                "sources": list(filtered.keys()),
                "dropped": dropped,
                "count": len(filtered),
                "initial_median": initial_median,
            },
        )
