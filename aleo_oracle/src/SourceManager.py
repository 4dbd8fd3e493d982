"""SourceManager: Per-source contribution and health tracking.

Every fetch cycle reports, per exchange, whether it contributed an
observation. Periodic health probes report whether the exchange's status
endpoint answered. The combined view backs the ``/health`` source map.

A source is never excluded from fan-out because of its record here: a
failing exchange simply stops contributing and the aggregator sees a
lower source count.

.. code-block:: python

    >>> manager = SourceManager(["binance", "kraken"])
    >>> manager.record_failure("kraken")
    >>> manager.record_failure("kraken")
    >>> manager.get_source_status("kraken").consecutive_failures
    2
    >>> manager.record_success("kraken")
    >>> manager.is_source_healthy("kraken")
    True
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass


@dataclass
class SourceStatus:
    """Tracks the status of a single source.

    :ivar consecutive_failures: Number of consecutive cycles without a quote.
    :ivar total_failures: Total failures since tracking began.
    :ivar total_successes: Total successes since tracking began.
    :ivar last_success: Time of the last contributed quote (ms), 0 if never.
    :ivar probe_healthy: Result of the last health probe, None if never probed.
    :ivar last_probe: Time of the last health probe (ms), 0 if never.
    """

    consecutive_failures: int = 0
    total_failures: int = 0
    total_successes: int = 0
    last_success: int = 0
    probe_healthy: bool | None = None
    last_probe: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class SourceManager:
    """Tracks per-source health for reporting.

    :ivar sources: List of tracked source names.
    :ivar failure_threshold: Consecutive failures after which a source is
        reported unhealthy.
    """

    DEFAULT_FAILURE_THRESHOLD = 3

    def __init__(
        self,
        sources: list[str],
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        """Initialize the source manager.

        :param sources: List of source names to track.
        :param failure_threshold: Consecutive failures before a source is
            considered unhealthy (default 3).
        """
        self.sources = list(sources)
        self.failure_threshold = failure_threshold
        self._status: dict[str, SourceStatus] = {s: SourceStatus() for s in sources}

    def _get_or_create(self, source: str) -> SourceStatus:
        if source not in self._status:
            self.sources.append(source)
            self._status[source] = SourceStatus()
        return self._status[source]

    def record_failure(self, source: str) -> None:
        """Record a cycle in which the source did not contribute.

        :param source: Source name that failed.
        """
        status = self._get_or_create(source)
        status.consecutive_failures += 1
        status.total_failures += 1

    def record_success(self, source: str) -> None:
        """Record a contributed quote, resetting the failure counter.

        :param source: Source name that succeeded.
        """
        status = self._get_or_create(source)
        status.consecutive_failures = 0
        status.total_successes += 1
        status.last_success = int(time.time() * 1000)

    def record_probe(self, source: str, healthy: bool) -> None:
        """Record the result of a health probe.

        :param source: Source name that was probed.
        :param healthy: Whether the probe succeeded.
        """
        status = self._get_or_create(source)
        status.probe_healthy = healthy
        status.last_probe = int(time.time() * 1000)

    def is_source_healthy(self, source: str) -> bool:
        """Check whether a source is currently considered healthy.

        A failed probe or too many consecutive failed cycles mark a source
        unhealthy.

        :param source: Source name to check.
        :returns: True if healthy, False if unhealthy or unknown.
        """
        status = self._status.get(source)
        if status is None:
            return False
        if status.probe_healthy is False:
            return False
        return status.consecutive_failures < self.failure_threshold

    def get_source_status(self, source: str) -> SourceStatus | None:
        """Get the status of a specific source.

        :param source: Source name to query.
        :returns: SourceStatus or None if source not tracked.
        """
        return self._status.get(source)

    def get_all_status(self) -> dict[str, SourceStatus]:
        """Get status of all sources.

        :returns: Dict mapping source names to their status.
        """
        return dict(self._status)

    def get_health_map(self) -> dict[str, bool]:
        """Get the healthy/unhealthy verdict of every tracked source.

        :returns: Dict mapping source names to health.
        """
        return {s: self.is_source_healthy(s) for s in self.sources}

    def get_healthy_sources(self) -> list[str]:
        """Get sources currently considered healthy."""
        return [s for s in self.sources if self.is_source_healthy(s)]

    def reset_source(self, source: str) -> None:
        """Reset a source's status.

        :param source: Source name to reset.
        """
        if source in self._status:
            self._status[source] = SourceStatus()
