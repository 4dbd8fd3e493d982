"""OracleNode: Aggregation, safety and signing pipeline for all pairs.

This module fetches prices from multiple exchanges, aggregates them using
median with outlier detection, guards the result with the circuit breaker,
then stores and signs every accepted consensus price.

Architecture:
    - Single fetch cycle fanning out through BatchFetchCoordinator
    - Prices are aggregated via median with outlier filtering
    - Candidates pass the per-pair circuit breaker
    - Accepted prices are appended to the PriceStore and signed
    - A per-pair lock serializes breaker checks and store writes
    - Source health is recorded per cycle and by periodic probes
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from .BatchFetchCoordinator import BatchFetchCoordinator
from .CircuitBreaker import CircuitBreaker, PriceCheckResult
from .ConsensusPrice import ConsensusPrice, PriceObservation
from .fetchers import BaseFetcher
from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceStore import DAY_MS, HOUR_MS, PriceStore
from .Scheduler import Scheduler
from .Signer import OracleSigner, SignedPriceData
from .SourceManager import SourceManager
from .TwapCalculator import TwapCalculator, TwapResult

logger = logging.getLogger(__name__)

DEFAULT_FETCH_PERIOD = 10
DEFAULT_STATS_PERIOD = 300
DEFAULT_PROBE_PERIOD = 60


@dataclass
class PriceUpdate:
    """Outcome of one aggregation attempt for a pair.

    :ivar pair: Canonical pair name.
    :ivar aggregation: Median/outlier result.
    :ivar check: Circuit breaker verdict, None if aggregation failed.
    :ivar consensus: Consensus price when the breaker allowed it.
    :ivar signed: Signed form of the consensus price.
    :ivar observations: Raw per-source observations.
    """

    pair: str
    aggregation: AggregationResult
    check: PriceCheckResult | None = None
    consensus: ConsensusPrice | None = None
    signed: SignedPriceData | None = None
    observations: dict[str, PriceObservation | None] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.consensus is not None

    @property
    def halted(self) -> bool:
        return self.check is not None and not self.check.allowed


class OracleNode:
    """Aggregates, guards, stores and signs prices for a fixed set of pairs.

    :ivar pairs: Canonical pair names served.
    :ivar fetchers: Dict mapping source names to fetcher instances.
    """

    def __init__(
        self,
        pairs: list[str],
        fetchers: dict[str, BaseFetcher],
        aggregator: PriceAggregator | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        store: PriceStore | None = None,
        signer: OracleSigner | None = None,
        twap_calculator: TwapCalculator | None = None,
        source_manager: SourceManager | None = None,
        fetch_timeout: float = BatchFetchCoordinator.DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        """Wire the pipeline together.

        :param pairs: Canonical pair names (e.g., ["ETH/USD", "BTC/USD"]).
        :param fetchers: Dict mapping source names to fetcher instances.
        :param aggregator: Median aggregator (default thresholds if omitted).
        :param circuit_breaker: Circuit breaker (default config if omitted).
        :param store: Price store (empty if omitted).
        :param signer: Signer (unsigned if omitted).
        :param twap_calculator: TWAP calculator.
        :param source_manager: Source health tracker.
        :param fetch_timeout: Per-source fan-out timeout in seconds.
        :raises ValueError: If no pairs or no fetchers are given.
        """
        if not pairs:
            raise ValueError("At least one trading pair must be specified")
        if not fetchers:
            raise ValueError("At least one price source must be specified")

        self.pairs = list(pairs)
        self.fetchers = fetchers
        self.aggregator = aggregator or PriceAggregator()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.store = store or PriceStore()
        self.signer = signer or OracleSigner()
        self.twap_calculator = twap_calculator or TwapCalculator()
        self.source_manager = source_manager or SourceManager(list(fetchers))
        self.coordinator = BatchFetchCoordinator(
            fetchers=fetchers,
            fetch_timeout=fetch_timeout,
            source_manager=self.source_manager,
        )

        self._locks: dict[str, asyncio.Lock] = {pair: asyncio.Lock() for pair in self.pairs}
        self._signed: dict[str, SignedPriceData] = {}
        self.started_at = int(time.time() * 1000)
        self.cycles = 0

        for pair in self.pairs:
            sources = self.coordinator.sources_for(pair)
            required = self.aggregator.get_min_sources(pair)
            if len(sources) < required:
                logger.warning(
                    f"{pair}: only {len(sources)} configured sources list this pair, "
                    f"{required} required"
                )
            else:
                logger.info(f"{pair}: supported by {sources}")

        logger.info(
            f"OracleNode initialized: pairs={self.pairs}, sources={list(fetchers)}, "
            f"signing={'enabled' if self.signer.is_signing_enabled() else 'disabled'}"
        )

    def supports_pair(self, pair: str) -> bool:
        return pair in self._locks

    def _lock_for(self, pair: str) -> asyncio.Lock:
        if pair not in self._locks:
            self._locks[pair] = asyncio.Lock()
        return self._locks[pair]

    async def get_aggregated_price(self, pair: str) -> PriceUpdate:
        """Fetch one pair from every source and run it through the pipeline.

        :param pair: Canonical pair name.
        :returns: PriceUpdate carrying the aggregation and breaker verdicts.
        """
        observations = await self.coordinator.fetch_pair(pair)
        return await self.process_observations(pair, observations)

    async def process_observations(
        self, pair: str, observations: dict[str, PriceObservation | None]
    ) -> PriceUpdate:
        """Aggregate observations, check the breaker, and store/sign if allowed.

        :param pair: Canonical pair name.
        :param observations: Dict mapping source to observation or None.
        :returns: PriceUpdate for the pair.
        """
        prices = {
            source: (obs.price if obs is not None else None) for source, obs in observations.items()
        }
        aggregation = self.aggregator.aggregate(prices, pair=pair)
        update = PriceUpdate(pair=pair, aggregation=aggregation, observations=observations)

        if not aggregation.success:
            logger.warning(f"{pair}: Aggregation failed ({aggregation.error}): {aggregation.metadata}")
            return update

        median_price = aggregation.price
        assert median_price is not None
        meta = aggregation.metadata

        async with self._lock_for(pair):
            check = self.circuit_breaker.check_price(pair, median_price)
            update.check = check
            if not check.allowed:
                logger.warning(f"{pair}: Price ${median_price:.6f} rejected: {check.reason}")
                return update

            consensus = ConsensusPrice.create(
                pair=pair,
                price=median_price,
                timestamp=int(time.time() * 1000),
                sources=meta.get("sources", []),
            )
            signed = self.signer.sign_price(
                pair, consensus.scaled_price, consensus.timestamp, consensus.source_count
            )
            self.store.set_price(consensus, signed.signature, signed.operator_address)
            self._signed[pair] = signed

        update.consensus = consensus
        update.signed = signed

        dropped = meta.get("dropped", {})
        log_msg = f"{pair}: ${median_price:.6f} (median of {consensus.source_count} sources"
        if dropped:
            log_msg += f", dropped: {', '.join(f'{s}=${p:.6f}' for s, p in dropped.items())}"
        log_msg += ")"
        logger.info(log_msg)

        return update

    async def fetch_cycle(self) -> dict[str, PriceUpdate]:
        """Fetch and process every pair once.

        :returns: Dict mapping pair to its PriceUpdate.
        """
        results = await self.coordinator.fetch_all(self.pairs)
        updates = await asyncio.gather(
            *(self.process_observations(pair, results.get(pair, {})) for pair in self.pairs)
        )
        self.cycles += 1
        accepted = sum(1 for u in updates if u.accepted)
        logger.debug(f"Fetch cycle {self.cycles}: {accepted}/{len(self.pairs)} pairs updated")
        return {u.pair: u for u in updates}

    async def probe_sources(self) -> dict[str, bool]:
        """Probe every exchange's status endpoint.

        :returns: Dict mapping source to probe result.
        """
        names = list(self.fetchers)
        outcomes = await asyncio.gather(
            *(self.fetchers[name].health_check() for name in names), return_exceptions=True
        )
        results: dict[str, bool] = {}
        for name, outcome in zip(names, outcomes, strict=True):
            healthy = outcome is True
            if isinstance(outcome, BaseException):
                logger.warning(f"[{name}] Health probe raised: {outcome}")
            self.source_manager.record_probe(name, healthy)
            results[name] = healthy
        return results

    def get_signed_price(self, pair: str) -> SignedPriceData | None:
        """Signed form of the latest stored price."""
        return self._signed.get(pair)

    def get_twap(self, pair: str, now: int | None = None) -> TwapResult | None:
        """TWAP breakdown from the stored history.

        :param pair: Canonical pair name.
        :param now: Reference time in ms (default: current time).
        :returns: TwapResult, or None if the pair has no price yet.
        """
        latest = self.store.get_price(pair)
        if latest is None:
            return None
        history = [(e.timestamp, e.value) for e in self.store.get_history(pair)]
        return self.twap_calculator.calculate_all_twaps(pair, history, latest.value, now=now)

    def get_moving_averages(self, pair: str, now: int | None = None) -> dict[str, float] | None:
        """SMA over 1h and 24h, EMA over the last 12 and 26 points.

        :returns: Averages keyed by name, or None if the pair has no history.
        """
        history = [(e.timestamp, e.value) for e in self.store.get_history(pair)]
        if not history:
            return None
        calc = self.twap_calculator
        return {
            "sma1h": calc.calculate_sma(history, HOUR_MS, now=now),
            "sma24h": calc.calculate_sma(history, DAY_MS, now=now),
            "ema12": calc.calculate_ema(history, 12),
            "ema26": calc.calculate_ema(history, 26),
        }

    def log_stats(self) -> None:
        """Log a summary of stored prices, breaker states and source health."""
        counts = self.store.get_history_counts()
        halted = [s.pair for s in self.circuit_breaker.get_all_states() if s.is_halted]
        healthy = self.source_manager.get_healthy_sources()
        logger.info(
            f"Stats: cycles={self.cycles}, history={counts}, halted={halted or 'none'}, "
            f"healthy sources={len(healthy)}/{len(self.fetchers)}"
        )

    def build_scheduler(
        self,
        fetch_period: float = DEFAULT_FETCH_PERIOD,
        stats_period: float = DEFAULT_STATS_PERIOD,
        probe_period: float = DEFAULT_PROBE_PERIOD,
    ) -> Scheduler:
        """Scheduler with the node's periodic jobs.

        :param fetch_period: Seconds between fetch cycles.
        :param stats_period: Seconds between stats log lines.
        :param probe_period: Seconds between source health probes.
        """
        scheduler = Scheduler("oracle-node")
        scheduler.add_job("fetch", fetch_period, self.fetch_cycle)
        scheduler.add_job("probe", probe_period, self.probe_sources)
        scheduler.add_job("stats", stats_period, self.log_stats, run_immediately=False)
        return scheduler

    async def close(self) -> None:
        """Release the shared HTTP client."""
        await BaseFetcher.close_shared_client()
