"""PriceStore: In-memory time series of consensus prices.

Holds the latest price per pair plus a bounded per-pair history (oldest
entries are evicted once ``max_history_length`` is reached, ~27h at a 10s
cadence). Statistics, candles and trend are derived on demand from the
retained history and never cached.

State is process-local; a restart begins with an empty history.

.. code-block:: python

    >>> store = PriceStore()
    >>> store.set_price(ConsensusPrice.create("ETH/USD", 3450.9, now_ms, ["binance"]))
    >>> store.get_price("ETH/USD").value
    3450.9
    >>> store.get_stats("ETH/USD", 60 * 60 * 1000).data_points
    1
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import asdict, dataclass

from .ConsensusPrice import ConsensusPrice, PriceHistoryEntry

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

# Relative gap between the 1h and 24h means that counts as a trend.
TREND_THRESHOLD = 0.02


@dataclass
class PriceStats:
    """Summary statistics of a price window.

    :ivar volatility: Population standard deviation of the prices.
    :ivar change_percent: Close vs open change in percent.
    """

    high: float
    low: float
    open: float
    close: float
    average: float
    volatility: float
    change: float
    change_percent: float
    data_points: int

    def to_dict(self) -> dict:
        return {
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "close": self.close,
            "average": self.average,
            "volatility": self.volatility,
            "change": self.change,
            "changePercent": self.change_percent,
            "dataPoints": self.data_points,
        }


@dataclass
class PriceCandle:
    """OHLC bucket; volume is the number of prices in the bucket."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TrendAnalysis:
    """Short-term vs long-term trend.

    :ivar trend: "up", "down" or "sideways".
    :ivar strength: Percent gap between the 1h and 24h means, capped at 100.
    :ivar support: 24h low.
    :ivar resistance: 24h high.
    """

    trend: str
    strength: float
    support: float
    resistance: float

    def to_dict(self) -> dict:
        return asdict(self)


def _now_ms() -> int:
    return int(time.time() * 1000)


def compute_stats(prices: list[float]) -> PriceStats | None:
    """Compute statistics over prices in time order.

    :param prices: Prices ordered oldest first.
    :returns: PriceStats, or None if prices is empty.
    """
    if not prices:
        return None

    count = len(prices)
    average = sum(prices) / count
    volatility = math.sqrt(sum((p - average) ** 2 for p in prices) / count)
    open_, close = prices[0], prices[-1]
    change = close - open_

    return PriceStats(
        high=max(prices),
        low=min(prices),
        open=open_,
        close=close,
        average=average,
        volatility=volatility,
        change=change,
        change_percent=(change / open_) * 100 if open_ > 0 else 0.0,
        data_points=count,
    )


class PriceStore:
    """Latest-price map plus bounded per-pair history.

    :ivar max_history_length: Entries retained per pair.
    """

    DEFAULT_MAX_HISTORY_LENGTH = 10_000

    def __init__(self, max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH) -> None:
        if max_history_length < 1:
            raise ValueError("max_history_length must be at least 1")
        self.max_history_length = max_history_length
        self._latest: dict[str, PriceHistoryEntry] = {}
        self._history: dict[str, deque[PriceHistoryEntry]] = {}

    def set_price(
        self,
        price: ConsensusPrice,
        signature: str = "",
        operator_address: str = "",
    ) -> PriceHistoryEntry:
        """Store a consensus price as the latest value and append it to history.

        :param price: Consensus price that passed every gate.
        :param signature: Signature over the price, empty if unsigned.
        :param operator_address: Operator that signed the price.
        :returns: The stored entry.
        """
        entry = PriceHistoryEntry(price=price, signature=signature, operator_address=operator_address)
        self._latest[price.pair] = entry

        history = self._history.get(price.pair)
        if history is None:
            history = deque(maxlen=self.max_history_length)
            self._history[price.pair] = history
        history.append(entry)

        logger.debug(f"Stored price for {price.pair}: ${price.price}")
        return entry

    def get_price(self, pair: str) -> PriceHistoryEntry | None:
        return self._latest.get(pair)

    def get_all_prices(self) -> list[PriceHistoryEntry]:
        return list(self._latest.values())

    def get_history(self, pair: str, limit: int | None = None) -> list[PriceHistoryEntry]:
        """Get the most recent history entries.

        :param pair: Canonical pair name.
        :param limit: Maximum number of entries (most recent kept), None for all.
        :returns: Entries ordered oldest first.
        """
        history = list(self._history.get(pair, ()))
        if limit:
            return history[-limit:]
        return history

    def get_history_by_time_range(
        self, pair: str, start_time: int, end_time: int
    ) -> list[PriceHistoryEntry]:
        """Get entries with ``start_time <= timestamp <= end_time``."""
        return [
            e for e in self._history.get(pair, ()) if start_time <= e.timestamp <= end_time
        ]

    def get_stats(self, pair: str, window_ms: int) -> PriceStats | None:
        """Statistics over ``[now - window_ms, now]``.

        :param pair: Canonical pair name.
        :param window_ms: Window length in milliseconds.
        :returns: PriceStats, or None if the window holds no entries.
        """
        now = _now_ms()
        entries = self.get_history_by_time_range(pair, now - window_ms, now)
        return compute_stats([e.value for e in entries])

    def get_candles(self, pair: str, interval_ms: int, limit: int = 100) -> list[PriceCandle]:
        """Bucket history into fixed-width OHLC candles.

        Buckets start at ``floor(timestamp / interval_ms) * interval_ms``.
        Only history inside the last ``interval_ms * limit`` and only the
        most recent ``limit`` buckets are returned.

        :param pair: Canonical pair name.
        :param interval_ms: Candle width in milliseconds.
        :param limit: Maximum number of candles.
        :returns: Candles ordered oldest first.
        """
        if interval_ms <= 0 or limit <= 0:
            return []

        start_time = _now_ms() - interval_ms * limit
        buckets: dict[int, list[float]] = {}
        for entry in self._history.get(pair, ()):
            if entry.timestamp < start_time:
                continue
            bucket = (entry.timestamp // interval_ms) * interval_ms
            buckets.setdefault(bucket, []).append(entry.value)

        candles = [
            PriceCandle(
                timestamp=bucket,
                open=values[0],
                high=max(values),
                low=min(values),
                close=values[-1],
                volume=len(values),
            )
            for bucket, values in sorted(buckets.items())
        ]
        return candles[-limit:]

    def get_trend(self, pair: str) -> TrendAnalysis | None:
        """Compare the 1h mean to the 24h mean.

        :param pair: Canonical pair name.
        :returns: TrendAnalysis, or None if either window is empty.
        """
        stats_1h = self.get_stats(pair, HOUR_MS)
        stats_24h = self.get_stats(pair, DAY_MS)
        if stats_1h is None or stats_24h is None:
            return None

        short_avg = stats_1h.average
        long_avg = stats_24h.average

        if short_avg > long_avg * (1 + TREND_THRESHOLD):
            trend = "up"
            strength = (short_avg / long_avg - 1) * 100
        elif short_avg < long_avg * (1 - TREND_THRESHOLD):
            trend = "down"
            strength = (1 - short_avg / long_avg) * 100
        else:
            trend = "sideways"
            strength = 0.0

        return TrendAnalysis(
            trend=trend,
            strength=min(strength, 100.0),
            support=stats_24h.low,
            resistance=stats_24h.high,
        )

    def get_price_age(self, pair: str) -> int | None:
        """Milliseconds since the latest price, None if there is none."""
        entry = self._latest.get(pair)
        if entry is None:
            return None
        return _now_ms() - entry.timestamp

    def is_stale(self, pair: str, max_age_ms: int) -> bool:
        """Whether the latest price is missing or older than max_age_ms."""
        age = self.get_price_age(pair)
        if age is None:
            return True
        return age > max_age_ms

    def get_history_counts(self) -> dict[str, int]:
        return {pair: len(history) for pair, history in self._history.items()}
