"""CircuitBreaker: Per-pair halt/resume safety gate for consensus prices.

Each pair is either Active or Halted. A candidate price trips the breaker
when its relative change from the last *accepted* price exceeds
``max_price_change_percent`` while that accepted price is still inside
``check_window_ms``. A tripped pair stays halted for ``halt_duration_ms``
and then resumes lazily the next time it is checked or queried. An
administrator may resume a pair at any time.

The breaker never raises: every check returns a :class:`PriceCheckResult`
and callers decide how to surface a halt.

.. code-block:: python

    >>> breaker = CircuitBreaker(CircuitBreakerConfig(max_price_change_percent=0.10))
    >>> breaker.check_price("ETH/USD", 100.0).allowed
    True
    >>> breaker.check_price("ETH/USD", 115.0).allowed
    False
    >>> breaker.is_halted("ETH/USD")
    True
    >>> breaker.resume("ETH/USD")
    >>> breaker.is_halted("ETH/USD")
    False
"""

from __future__ import annotations

import dataclasses
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker thresholds.

    :ivar max_price_change_percent: Relative change that trips the breaker (0.10 = 10%).
    :ivar check_window_ms: Age beyond which the last accepted price is not compared.
    :ivar halt_duration_ms: How long a tripped pair stays halted.
    :ivar enabled: When False every check is allowed.
    """

    max_price_change_percent: float = 0.10
    check_window_ms: int = 60_000
    halt_duration_ms: int = 300_000
    enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "maxPriceChangePercent": self.max_price_change_percent,
            "checkWindowMs": self.check_window_ms,
            "haltDurationMs": self.halt_duration_ms,
            "enabled": self.enabled,
        }


@dataclass
class CircuitBreakerState:
    """Breaker state of one pair.

    :ivar pair: Canonical pair name.
    :ivar is_halted: Whether the pair is halted.
    :ivar halted_at: Time of the last trip (ms).
    :ivar halt_until: Time at which the halt expires (ms).
    :ivar last_price: Last accepted price.
    :ivar last_price_timestamp: When the last price was accepted (ms).
    :ivar trip_count: Number of trips since start.
    :ivar last_trip_reason: Reason recorded at the last trip.
    """

    pair: str
    is_halted: bool = False
    halted_at: int | None = None
    halt_until: int | None = None
    last_price: float | None = None
    last_price_timestamp: int | None = None
    trip_count: int = 0
    last_trip_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "pair": self.pair,
            "isHalted": self.is_halted,
            "haltedAt": self.halted_at,
            "haltUntil": self.halt_until,
            "lastPrice": self.last_price,
            "lastPriceTimestamp": self.last_price_timestamp,
            "tripCount": self.trip_count,
            "lastTripReason": self.last_trip_reason,
        }


@dataclass
class PriceCheckResult:
    """Verdict of a circuit breaker check.

    :ivar allowed: Whether the price may be accepted.
    :ivar state: Snapshot of the pair's state after the check.
    :ivar reason: Human-readable explanation, if any.
    :ivar price_change: Relative change from the last accepted price, if compared.
    """

    allowed: bool
    state: CircuitBreakerState
    reason: str | None = None
    price_change: float | None = None


class CircuitBreaker:
    """Per-pair circuit breaker.

    :ivar config: Active thresholds.
    """

    def __init__(self, config: CircuitBreakerConfig | None = None) -> None:
        """Initialize the breaker.

        :param config: Thresholds (defaults: 10% change, 60s window, 300s halt).
        """
        self.config = config if config is not None else CircuitBreakerConfig()
        self._states: dict[str, CircuitBreakerState] = {}
        logger.info(
            f"Circuit breaker initialized: {self.config.max_price_change_percent * 100:g}% "
            f"threshold, {self.config.halt_duration_ms / 1000:g}s halt duration"
        )

    def _get_state(self, pair: str) -> CircuitBreakerState:
        if pair not in self._states:
            self._states[pair] = CircuitBreakerState(pair=pair)
        return self._states[pair]

    def _snapshot(self, pair: str) -> CircuitBreakerState:
        return dataclasses.replace(self._get_state(pair))

    def _expire_halt(self, state: CircuitBreakerState, now: int) -> None:
        """Resume a pair whose halt has run out."""
        if state.is_halted and state.halt_until is not None and now >= state.halt_until:
            self._clear_halt(state)
            logger.info(f"Circuit breaker auto-resumed for {state.pair}")

    @staticmethod
    def _clear_halt(state: CircuitBreakerState) -> None:
        state.is_halted = False
        state.halted_at = None
        state.halt_until = None

    def check_price(self, pair: str, new_price: float) -> PriceCheckResult:
        """Check whether a candidate consensus price may be accepted.

        An accepted price becomes the new baseline; a rejected one does not.

        :param pair: Canonical pair name.
        :param new_price: Candidate price.
        :returns: Verdict with a snapshot of the pair's state.
        """
        if not self.config.enabled:
            return PriceCheckResult(
                allowed=True,
                reason="Circuit breaker disabled",
                state=self._snapshot(pair),
            )

        state = self._get_state(pair)
        now = _now_ms()

        self._expire_halt(state, now)
        if state.is_halted:
            remaining = math.ceil(self.get_remaining_halt_time(pair) / 1000)
            return PriceCheckResult(
                allowed=False,
                reason=f"Circuit breaker halted. Resumes in {remaining}s",
                state=self._snapshot(pair),
            )

        if state.last_price is None or state.last_price_timestamp is None:
            self._accept(state, new_price, now)
            return PriceCheckResult(
                allowed=True,
                reason="First price recorded",
                state=self._snapshot(pair),
            )

        if now - state.last_price_timestamp > self.config.check_window_ms:
            self._accept(state, new_price, now)
            return PriceCheckResult(
                allowed=True,
                reason="Previous price outside check window",
                state=self._snapshot(pair),
            )

        price_change = abs(new_price - state.last_price) / state.last_price

        if price_change > self.config.max_price_change_percent:
            self._trip(
                state,
                f"Price change of {price_change * 100:.2f}% exceeds "
                f"{self.config.max_price_change_percent * 100:g}% threshold",
                now,
            )
            return PriceCheckResult(
                allowed=False,
                reason=f"Circuit breaker tripped: {price_change * 100:.2f}% change exceeds threshold",
                price_change=price_change,
                state=self._snapshot(pair),
            )

        self._accept(state, new_price, now)
        return PriceCheckResult(
            allowed=True,
            price_change=price_change,
            state=self._snapshot(pair),
        )

    @staticmethod
    def _accept(state: CircuitBreakerState, price: float, now: int) -> None:
        state.last_price = price
        state.last_price_timestamp = now

    def _trip(self, state: CircuitBreakerState, reason: str, now: int) -> None:
        state.is_halted = True
        state.halted_at = now
        state.halt_until = now + self.config.halt_duration_ms
        state.trip_count += 1
        state.last_trip_reason = reason

        until = datetime.fromtimestamp(state.halt_until / 1000, tz=timezone.utc).isoformat()
        logger.warning(f"CIRCUIT BREAKER TRIPPED for {state.pair}: {reason}. Halted until {until}")

    def resume(self, pair: str) -> None:
        """Manually resume a pair, regardless of remaining halt time.

        :param pair: Canonical pair name.
        """
        self._clear_halt(self._get_state(pair))
        logger.info(f"Circuit breaker resumed for {pair}")

    def force_halt(self, pair: str, reason: str = "Manual halt") -> None:
        """Halt a pair administratively for the configured duration.

        :param pair: Canonical pair name.
        :param reason: Reason recorded in the state.
        """
        self._trip(self._get_state(pair), reason, _now_ms())

    def is_halted(self, pair: str) -> bool:
        """Check whether a pair is halted, resuming it if the halt expired.

        :param pair: Canonical pair name.
        :returns: True if halted.
        """
        state = self._get_state(pair)
        self._expire_halt(state, _now_ms())
        return state.is_halted

    def get_state(self, pair: str) -> CircuitBreakerState:
        """Get a snapshot of a pair's state, resuming it if the halt expired.

        :param pair: Canonical pair name.
        :returns: Copy of the pair's state.
        """
        self._expire_halt(self._get_state(pair), _now_ms())
        return self._snapshot(pair)

    def get_all_states(self) -> list[CircuitBreakerState]:
        """Get snapshots of every pair the breaker has seen."""
        return [self.get_state(pair) for pair in list(self._states)]

    def get_remaining_halt_time(self, pair: str) -> int:
        """Remaining halt time in milliseconds (0 if not halted)."""
        state = self._get_state(pair)
        if not state.is_halted or state.halt_until is None:
            return 0
        return max(0, state.halt_until - _now_ms())

    def get_config(self) -> CircuitBreakerConfig:
        """Get a copy of the current thresholds."""
        return dataclasses.replace(self.config)
