"""BatchFetchCoordinator: Concurrent fan-out of price requests.

Every configured exchange is asked for every pair it lists, concurrently.
Batch-capable exchanges get one request for all their pairs; the others get
one request per pair. Each request is bounded by ``fetch_timeout``, so a
slow or dead exchange lowers the source count instead of stalling the cycle.

Architecture:
    - Groups pairs by source according to each fetcher's symbol map
    - Calls fetch_batch() for batch-capable sources (single API call)
    - Falls back to individual fetch_price() for non-batch sources
    - Returns results organized by pair for the aggregator
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ConsensusPrice import PriceObservation
    from .fetchers import BaseFetcher
    from .SourceManager import SourceManager

logger = logging.getLogger(__name__)

PairResults = dict[str, dict[str, "PriceObservation | None"]]


class BatchFetchCoordinator:
    """Fans price requests out to multiple exchanges.

    :ivar fetchers: Dict mapping source names to fetcher instances.
    :ivar fetch_timeout: Upper bound for one source's requests in seconds.
    :ivar source_manager: Optional tracker told which sources contributed.
    """

    DEFAULT_FETCH_TIMEOUT = 10.0

    def __init__(
        self,
        fetchers: dict[str, BaseFetcher],
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        source_manager: SourceManager | None = None,
    ) -> None:
        """Initialize the batch fetch coordinator.

        :param fetchers: Dict mapping source names to fetcher instances.
        :param fetch_timeout: Timeout for fetch requests (default: 10.0).
        :param source_manager: Optional SourceManager to record outcomes in.
        """
        self.fetchers = fetchers
        self.fetch_timeout = fetch_timeout
        self.source_manager = source_manager

    def sources_for(self, pair: str) -> list[str]:
        """Names of the configured sources that list a pair."""
        return [name for name, fetcher in self.fetchers.items() if fetcher.supports_pair(pair)]

    async def fetch_all(self, pairs: list[str]) -> PairResults:
        """Fetch observations for all pairs from all sources.

        :param pairs: Canonical pair names.
        :returns: Dict mapping pair to {source: observation or None}. Only
            sources that list the pair appear in its dict.
        """
        if not pairs:
            return {}

        results: PairResults = {pair: {} for pair in pairs}

        source_pairs: dict[str, list[str]] = {}
        for source, fetcher in self.fetchers.items():
            supported = [pair for pair in pairs if fetcher.supports_pair(pair)]
            if supported:
                source_pairs[source] = supported

        if not source_pairs:
            return results

        source_results = await asyncio.gather(
            *(self._fetch_source(source, source_list) for source, source_list in source_pairs.items()),
            return_exceptions=True,
        )

        for (source, source_list), result in zip(source_pairs.items(), source_results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"[{source}] Fetch exception: {result}")
                result = {pair: None for pair in source_list}

            for pair, observation in result.items():
                if pair in results:
                    results[pair][source] = observation

            self._record(source, result)

        return results

    async def fetch_pair(self, pair: str) -> dict[str, PriceObservation | None]:
        """Fetch one pair from every source that lists it.

        :param pair: Canonical pair name.
        :returns: Dict mapping source to observation or None.
        """
        results = await self.fetch_all([pair])
        return results.get(pair, {})

    def _record(self, source: str, result: dict[str, PriceObservation | None]) -> None:
        if self.source_manager is None or not result:
            return
        if any(observation is not None for observation in result.values()):
            self.source_manager.record_success(source)
        else:
            self.source_manager.record_failure(source)

    async def _fetch_source(
        self,
        source: str,
        pairs: list[str],
    ) -> dict[str, PriceObservation | None]:
        """Fetch all pairs from a single source.

        Uses batch fetching if supported, otherwise concurrent individual fetches.

        :param source: Source name.
        :param pairs: Canonical pair names.
        :returns: Dict mapping pair to observation or None.
        """
        fetcher = self.fetchers.get(source)
        if not fetcher:
            return {pair: None for pair in pairs}

        try:
            if fetcher.supports_batch:
                logger.debug(f"[{source}] Batch fetching {len(pairs)} pairs")
                return await asyncio.wait_for(
                    fetcher.fetch_batch(pairs),
                    timeout=self.fetch_timeout,
                )

            logger.debug(f"[{source}] Individual fetching {len(pairs)} pairs")
            observations = await asyncio.gather(
                *(self._fetch_single(fetcher, pair) for pair in pairs)
            )
            return dict(zip(pairs, observations, strict=True))

        except asyncio.TimeoutError:
            logger.warning(f"[{source}] Batch fetch timeout")
            return {pair: None for pair in pairs}
        except Exception as e:
            logger.warning(f"[{source}] Batch fetch error: {e}")
            return {pair: None for pair in pairs}

    async def _fetch_single(
        self,
        fetcher: BaseFetcher,
        pair: str,
    ) -> PriceObservation | None:
        """Fetch a single pair with timeout.

        :param fetcher: Fetcher instance to use.
        :param pair: Canonical pair name.
        :returns: Observation or None on failure.
        """
        try:
            return await asyncio.wait_for(
                fetcher.fetch_price(pair),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{fetcher.name}] Timeout fetching {pair}")
            return None
        except Exception as e:
            logger.warning(f"[{fetcher.name}] Error fetching {pair}: {e}")
            return None
