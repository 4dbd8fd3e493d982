"""TwapCalculator: Time-weighted average prices over rolling windows.

TWAP = sum(avg(p_i, p_i+1) * (t_i+1 - t_i)) / sum(t_i+1 - t_i), plus a tail
segment weighting the last observed price by the time elapsed until now,
so a stale tail still counts.

History is passed as ``(timestamp_ms, price)`` points.

.. code-block:: python

    >>> calc = TwapCalculator()
    >>> calc.calculate_twap([(now - 60_000, 100.0), (now, 102.0)], 3_600_000, now=now)
    101.0
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Sequence

from .PriceStore import compute_stats
from .TradingPair import scale_price

logger = logging.getLogger(__name__)

PricePoint = tuple[int, float]

FIVE_MINUTES_MS = 5 * 60 * 1000
ONE_HOUR_MS = 60 * 60 * 1000
ONE_DAY_MS = 24 * ONE_HOUR_MS
SEVEN_DAYS_MS = 7 * ONE_DAY_MS

TWAP_WINDOWS: dict[str, int] = {
    "5m": FIVE_MINUTES_MS,
    "1h": ONE_HOUR_MS,
    "24h": ONE_DAY_MS,
    "7d": SEVEN_DAYS_MS,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def calculate_deviation(spot: float, twap: float) -> float:
    """Relative deviation of spot from TWAP, 0 if TWAP is not positive."""
    if twap <= 0:
        return 0.0
    return (spot - twap) / twap


@dataclass
class TwapResult:
    """TWAP breakdown for one pair.

    Deviations are fractions (0.01 = 1%).
    """

    pair: str
    twap_5m: float
    twap_1h: float
    twap_24h: float
    twap_7d: float
    current_price: float
    deviation_1h: float
    deviation_24h: float
    volatility_24h: float
    timestamp: int
    data_points: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize for the HTTP API, deviations in percent."""
        return {
            "pair": self.pair,
            "twap5m": self.twap_5m,
            "twap1h": self.twap_1h,
            "twap24h": self.twap_24h,
            "twap7d": self.twap_7d,
            "currentPrice": self.current_price,
            "deviation1h": self.deviation_1h * 100,
            "deviation24h": self.deviation_24h * 100,
            "volatility24h": self.volatility_24h,
            "timestamp": self.timestamp,
            "dataPoints": dict(self.data_points),
            "ledger": self.to_ledger_dict(),
        }

    def to_ledger_dict(self) -> dict:
        """Fixed-point (x10^8) values in the order ``submit_twap`` expects."""
        return {
            "twap5m": str(scale_price(self.twap_5m)),
            "twap1h": str(scale_price(self.twap_1h)),
            "twap24h": str(scale_price(self.twap_24h)),
            "twap7d": str(scale_price(self.twap_7d)),
            "volatility24h": str(scale_price(self.volatility_24h)),
            "dataPoints1h": self.data_points.get("1h", 0),
            "dataPoints24h": self.data_points.get("24h", 0),
            "timestamp": self.timestamp,
        }


class TwapCalculator:
    """Stateless TWAP, SMA and EMA calculator."""

    def calculate_twap(
        self, history: Sequence[PricePoint], window_ms: int, now: int | None = None
    ) -> float:
        """Time-weighted average price over ``[now - window_ms, now]``.

        :param history: (timestamp_ms, price) points, any order.
        :param window_ms: Window length in milliseconds.
        :param now: Reference time in ms (default: current time).
        :returns: TWAP; the latest known price if the window is empty;
            0 if there is no history at all.
        """
        if not history:
            return 0.0

        now = _now_ms() if now is None else now
        points = sorted(
            (p for p in history if p[0] >= now - window_ms), key=lambda p: p[0]
        )

        if not points:
            return max(history, key=lambda p: p[0])[1]
        if len(points) == 1:
            return points[0][1]

        # Offsets from the first price keep a constant series exact.
        base = points[0][1]
        weighted_offset = 0.0
        total_weight = 0

        for (t0, p0), (t1, p1) in zip(points, points[1:]):
            weight = t1 - t0
            weighted_offset += ((p0 + p1) / 2 - base) * weight
            total_weight += weight

        last_ts, last_price = points[-1]
        tail = now - last_ts
        if tail > 0:
            weighted_offset += (last_price - base) * tail
            total_weight += tail

        if total_weight == 0:
            return last_price

        return base + weighted_offset / total_weight

    def calculate_all_twaps(
        self,
        pair: str,
        history: Sequence[PricePoint],
        current_price: float,
        now: int | None = None,
    ) -> TwapResult:
        """TWAPs for 5m/1h/24h/7d with deviations and data-point counts.

        :param pair: Canonical pair name.
        :param history: (timestamp_ms, price) points.
        :param current_price: Spot price to compare against.
        :param now: Reference time in ms (default: current time).
        :returns: TwapResult.
        """
        now = _now_ms() if now is None else now

        twaps = {
            name: self.calculate_twap(history, window, now=now)
            for name, window in TWAP_WINDOWS.items()
        }
        data_points = {
            name: sum(1 for ts, _ in history if ts >= now - window)
            for name, window in TWAP_WINDOWS.items()
        }
        day_prices = [price for ts, price in sorted(history) if ts >= now - ONE_DAY_MS]
        day_stats = compute_stats(day_prices)

        logger.debug(
            f"TWAP {pair}: 1h={twaps['1h']:.2f} 24h={twaps['24h']:.2f} 7d={twaps['7d']:.2f}"
        )

        return TwapResult(
            pair=pair,
            twap_5m=twaps["5m"],
            twap_1h=twaps["1h"],
            twap_24h=twaps["24h"],
            twap_7d=twaps["7d"],
            current_price=current_price,
            deviation_1h=calculate_deviation(current_price, twaps["1h"]),
            deviation_24h=calculate_deviation(current_price, twaps["24h"]),
            volatility_24h=day_stats.volatility if day_stats else 0.0,
            timestamp=now,
            data_points=data_points,
        )

    def calculate_sma(
        self, history: Sequence[PricePoint], window_ms: int, now: int | None = None
    ) -> float:
        """Simple moving average over a time window.

        :returns: Mean of the window; latest price if the window is empty; 0 if no history.
        """
        if not history:
            return 0.0
        now = _now_ms() if now is None else now
        prices = [price for ts, price in history if ts >= now - window_ms]
        if not prices:
            return max(history, key=lambda p: p[0])[1]
        return sum(prices) / len(prices)

    def calculate_ema(self, history: Sequence[PricePoint], periods: int) -> float:
        """Exponential moving average over the last ``periods`` points.

        :returns: EMA seeded with the oldest point of the span; 0 if no history.
        """
        if not history or periods <= 0:
            return 0.0
        prices = [price for _, price in sorted(history, key=lambda p: p[0])][-periods:]
        multiplier = 2 / (len(prices) + 1)
        ema = prices[0]
        for price in prices[1:]:
            ema = (price - ema) * multiplier + ema
        return ema
