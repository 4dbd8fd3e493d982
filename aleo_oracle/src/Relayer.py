"""Relayer: Publishes node prices to the Aleo oracle program.

Every poll cycle:
    1. Skip the cycle if the operator cannot afford two transactions
    2. Sweep pending transactions (confirmed, failed or timed out) and
       finalize expired consensus rounds
    3. Per pair: fetch the node price, validate it, decide with
       should_update(), and submit through the first applicable strategy
    4. Submit TWAP data every twap_interval per pair

A pair with a pending transaction is never submitted again until the sweep
clears it. Errors in one pair are logged and do not affect the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field

import httpx

from .LedgerUtility import LedgerError, LedgerUtility, TransactionStatus, u32, u64, u128
from .OracleClient import NodePrice, OracleClient
from .PriceValidator import validate_price_data
from .Scheduler import Scheduler
from .SubmissionStrategy import (
    MultiOperatorSubmission,
    SignedSubmission,
    SimpleSubmission,
    SubmissionContext,
    SubmissionOutcome,
    SubmissionStatus,
    SubmissionStrategy,
    run_strategies,
)
from .TradingPair import PAIR_IDS, get_pair_id

logger = logging.getLogger(__name__)

CONSENSUS_MODES = ("simple", "multi")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RelayerConfig:
    """Relayer settings. Intervals are in milliseconds, fees in microcredits."""

    operator_address: str = ""
    pairs: list[str] = field(default_factory=lambda: list(PAIR_IDS))
    program_id: str = "price_oracle_v2.aleo"
    deviation_threshold: float = 0.005
    heartbeat_interval_ms: int = 300_000
    poll_interval_ms: int = 30_000
    twap_interval_ms: int = 300_000
    consensus_deadline_ms: int = 60_000
    pending_timeout_ms: int = 600_000
    stats_interval_ms: int = 300_000
    health_interval_ms: int = 60_000
    base_fee: int = 500_000
    priority_fee: int = 100_000
    min_source_count: int = 3
    consensus_mode: str = "simple"

    @property
    def transaction_fee(self) -> int:
        return self.base_fee + self.priority_fee

    @property
    def min_balance(self) -> int:
        """Balance below which a cycle is skipped (two transactions)."""
        return 2 * self.transaction_fee

    def validate(self) -> None:
        """Check the configuration.

        :raises ValueError: On missing operator address or invalid values.
        """
        if not self.operator_address:
            raise ValueError("OPERATOR_ADDRESS is required")
        if self.consensus_mode not in CONSENSUS_MODES:
            raise ValueError(
                f"consensus_mode must be one of {CONSENSUS_MODES}, got '{self.consensus_mode}'"
            )
        if self.deviation_threshold <= 0:
            raise ValueError("deviation_threshold must be positive")
        if self.min_source_count < 1:
            raise ValueError("min_source_count must be at least 1")
        unknown = [p for p in self.pairs if get_pair_id(p) is None]
        if unknown:
            raise ValueError(f"Pairs without an on-chain id: {unknown}")


@dataclass
class RelayerStats:
    total_submissions: int = 0
    successful_submissions: int = 0
    failed_submissions: int = 0
    last_successful_submission: int = 0
    total_fees_spent: int = 0
    twap_submissions: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SubmittedPrice:
    """A price handed to the ledger.

    :ivar submitted_at: Wall-clock submission time (ms), used for the pending timeout.
    """

    price: float
    scaled_price: int
    timestamp: int
    source_count: int
    tx_id: str | None = None
    submitted_at: int = 0


@dataclass
class ConsensusRound:
    pair_id: int
    epoch: int
    started_at: int
    deadline: int
    submitted: bool = False


def should_update(
    last: SubmittedPrice | None,
    new_price: float,
    new_timestamp: int,
    deviation_threshold: float,
    heartbeat_interval_ms: int,
    has_pending: bool,
) -> bool:
    """Decide whether a price should be submitted.

    :param last: Last submitted price (baseline), None if never submitted.
    :param new_price: Candidate price.
    :param new_timestamp: Candidate timestamp in ms.
    :param deviation_threshold: Relative change that triggers an update (0.005 = 0.5%).
    :param heartbeat_interval_ms: Maximum time between updates.
    :param has_pending: Whether a transaction for the pair is unconfirmed.
    :returns: True if the price should be submitted.
    """
    if has_pending:
        return False
    if last is None:
        return True
    if new_timestamp - last.timestamp >= heartbeat_interval_ms:
        return True
    if last.price <= 0:
        return True
    return abs(new_price - last.price) / last.price >= deviation_threshold


class Relayer:
    """Relayer state machine.

    :ivar config: Relayer settings.
    :ivar stats: Submission counters.
    :ivar last_submitted: Baseline per pair.
    :ivar pending: Unconfirmed submission per pair.
    :ivar rounds: Active consensus round per pair id.
    """

    def __init__(self, config: RelayerConfig, client: OracleClient, ledger: LedgerUtility) -> None:
        self.config = config
        self.client = client
        self.ledger = ledger
        self.stats = RelayerStats()
        self.last_submitted: dict[str, SubmittedPrice] = {}
        self.pending: dict[str, SubmittedPrice] = {}
        self.last_twap: dict[str, int] = {}
        self.rounds: dict[int, ConsensusRound] = {}
        self.cycles = 0
        self._cycle_lock = asyncio.Lock()

        self.strategies: list[SubmissionStrategy] = [
            SignedSubmission(),
            MultiOperatorSubmission(
                config.consensus_mode,
                config.min_source_count,
                on_before_submit=self._ensure_round if config.consensus_mode == "multi" else None,
            ),
            SimpleSubmission(),
        ]

    def _record_tx(self) -> None:
        self.stats.total_fees_spent += self.config.transaction_fee

    async def check_balance(self) -> bool:
        """Whether the operator can afford to submit this cycle."""
        try:
            balance = await self.ledger.get_balance(self.config.operator_address)
        except LedgerError as e:
            logger.warning(f"Failed to get balance: {e}")
            return False

        if balance < self.config.min_balance:
            logger.warning(f"Low balance: {balance / 1_000_000:.4f} credits")
            return False
        return True

    async def sweep_pending(self, now: int | None = None) -> None:
        """Resolve pending transactions.

        Confirmed: count a success and clear the pending marker.
        Failed or older than pending_timeout_ms: clear the marker and the
        baseline so the next cycle submits afresh.
        """
        now = _now_ms() if now is None else now
        for pair, submitted in list(self.pending.items()):
            tx_id = submitted.tx_id or ""
            try:
                status = await self.ledger.get_transaction_status(tx_id)
            except LedgerError as e:
                logger.debug(f"Transaction {tx_id} status check: {e}")
                status = TransactionStatus.PENDING

            if status is TransactionStatus.CONFIRMED:
                logger.info(f"Transaction confirmed: {tx_id} ({pair})")
                self.stats.successful_submissions += 1
                self.stats.last_successful_submission = now
                del self.pending[pair]
            elif status is TransactionStatus.FAILED:
                logger.warning(f"Transaction failed: {tx_id} ({pair})")
                self._forget(pair)
            elif now - submitted.submitted_at > self.config.pending_timeout_ms:
                logger.warning(f"Transaction timed out: {tx_id} ({pair})")
                self._forget(pair)

    def _forget(self, pair: str) -> None:
        self.stats.failed_submissions += 1
        self.pending.pop(pair, None)
        self.last_submitted.pop(pair, None)

    async def _ensure_round(self, ledger: LedgerUtility, ctx: SubmissionContext) -> None:
        """Open a consensus round for the pair if none is active."""
        current = self.rounds.get(ctx.pair_id)
        if current is not None:
            current.submitted = True
            return

        timestamp = ctx.price.timestamp
        deadline = timestamp + self.config.consensus_deadline_ms
        logger.info(f"Starting consensus round for pair {ctx.pair_id}")
        try:
            await ledger.execute("start_round", [u64(ctx.pair_id), u64(timestamp), u64(deadline)])
        except LedgerError as e:
            logger.error(f"Failed to start consensus round: {e}")
            return
        self._record_tx()
        self.rounds[ctx.pair_id] = ConsensusRound(
            pair_id=ctx.pair_id,
            epoch=0,
            started_at=timestamp,
            deadline=deadline,
            submitted=True,
        )

    async def finalize_expired_rounds(self, now: int | None = None) -> None:
        """Finalize consensus rounds whose deadline has passed."""
        now = _now_ms() if now is None else now
        for pair_id, round_ in list(self.rounds.items()):
            if now < round_.deadline:
                continue
            logger.info(f"Finalizing consensus round for pair {pair_id}")
            try:
                await self.ledger.execute("finalize_consensus", [u64(pair_id), u64(now)])
                self._record_tx()
            except LedgerError as e:
                logger.error(f"Failed to finalize consensus: {e}")
            del self.rounds[pair_id]

    async def submit_price(self, pair: str, price: NodePrice) -> SubmissionOutcome:
        """Submit a price through the strategy chain and record bookkeeping.

        :param pair: Canonical pair name.
        :param price: Validated node price.
        :returns: The deciding outcome.
        """
        pair_id = get_pair_id(pair)
        if pair_id is None:
            logger.error(f"Unknown pair: {pair}")
            return SubmissionOutcome(SubmissionStatus.SKIPPED, "none", reason="unknown pair")

        ctx = SubmissionContext(pair=pair, pair_id=pair_id, price=price)
        outcome = await run_strategies(self.strategies, self.ledger, ctx)

        if outcome.status is SubmissionStatus.FAILED or ctx.signed_failed:
            self.stats.failed_submissions += 1

        if outcome.submitted:
            submitted = SubmittedPrice(
                price=price.price,
                scaled_price=price.scaled_price,
                timestamp=price.timestamp,
                source_count=price.source_count,
                tx_id=outcome.tx_id,
                submitted_at=_now_ms(),
            )
            self.pending[pair] = submitted
            self.last_submitted[pair] = submitted
            self.stats.total_submissions += 1
            self._record_tx()

        return outcome

    async def maybe_submit_twap(self, pair: str, timestamp: int) -> bool:
        """Submit TWAP data if twap_interval_ms passed since the last one.

        :param pair: Canonical pair name.
        :param timestamp: Timestamp of the current price (ms).
        :returns: True if a TWAP transaction was submitted.
        """
        last = self.last_twap.get(pair)
        if last is not None and timestamp - last < self.config.twap_interval_ms:
            return False

        pair_id = get_pair_id(pair)
        data = await self.client.get_twap(pair)
        if pair_id is None or not data:
            return False

        ledger_data = data.get("ledger", data)
        try:
            inputs = [
                u64(pair_id),
                u128(ledger_data["twap5m"]),
                u128(ledger_data["twap1h"]),
                u128(ledger_data["twap24h"]),
                u128(ledger_data["twap7d"]),
                u64(ledger_data["volatility24h"]),
                u32(ledger_data["dataPoints1h"]),
                u32(ledger_data["dataPoints24h"]),
                u64(timestamp),
            ]
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Malformed TWAP data for {pair}: {e}")
            return False

        logger.info(f"Submitting TWAP for {pair}")
        try:
            tx_id = await self.ledger.execute("submit_twap", inputs)
        except LedgerError as e:
            logger.error(f"Failed to submit TWAP {pair}: {e}")
            return False

        logger.info(f"TWAP submitted: {tx_id}")
        self.last_twap[pair] = timestamp
        self.stats.twap_submissions += 1
        self._record_tx()
        return True

    async def process_pair(self, pair: str) -> bool:
        """Fetch, validate, decide and submit one pair.

        :returns: True if a price update was submitted.
        """
        price = await self.client.get_price(pair)
        if price is None:
            return False

        validation = validate_price_data(price, self.config.min_source_count)
        if not validation.valid:
            logger.warning(f"Price validation failed for {pair}: {validation.reason}")
            return False

        updated = False
        if should_update(
            self.last_submitted.get(pair),
            price.price,
            price.timestamp,
            self.config.deviation_threshold,
            self.config.heartbeat_interval_ms,
            pair in self.pending,
        ):
            outcome = await self.submit_price(pair, price)
            if outcome.submitted:
                logger.info(f"{pair}: ${price.price:.2f} submitted ({outcome.strategy})")
                updated = True

        await self.maybe_submit_twap(pair, price.timestamp)
        return updated

    async def run_cycle(self) -> int:
        """Run one relayer cycle. Cycles never overlap.

        :returns: Number of price updates submitted.
        """
        async with self._cycle_lock:
            self.cycles += 1
            logger.info("Starting relayer cycle...")

            if not await self.check_balance():
                return 0

            await self.sweep_pending()
            await self.finalize_expired_rounds()

            updates = 0
            for pair in self.config.pairs:
                try:
                    if await self.process_pair(pair):
                        updates += 1
                except Exception as e:
                    logger.error(f"Error processing {pair}: {e}")

            logger.info(f"Cycle complete: {updates} updates, {len(self.pending)} pending")
            return updates

    async def health_check(self) -> bool:
        """Check that the oracle node is healthy and the ledger reachable."""
        try:
            health = await self.client.get_health()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Health check failed: {e}")
            return False
        if health.get("status") != "healthy":
            logger.warning("Oracle node unhealthy")
            return False

        try:
            height = await self.ledger.latest_height()
        except LedgerError as e:
            logger.warning(f"Aleo network unreachable: {e}")
            return False
        logger.info(f"Network healthy at block {height}")
        return True

    def log_stats(self) -> None:
        logger.info("=== RELAYER STATISTICS ===")
        logger.info(f"Total submissions: {self.stats.total_submissions}")
        logger.info(f"Successful: {self.stats.successful_submissions}")
        logger.info(f"Failed: {self.stats.failed_submissions}")
        logger.info(f"TWAP submissions: {self.stats.twap_submissions}")
        logger.info(f"Fees spent: {self.stats.total_fees_spent / 1_000_000:.4f} credits")
        logger.info(f"Pending: {len(self.pending)}")
        if self.stats.last_successful_submission:
            ago = round((_now_ms() - self.stats.last_successful_submission) / 1000)
            logger.info(f"Last success: {ago}s ago")

    def build_scheduler(self) -> Scheduler:
        """Scheduler with the poll, stats and health jobs."""
        scheduler = Scheduler("relayer")
        scheduler.add_job("poll", self.config.poll_interval_ms / 1000, self.run_cycle)
        scheduler.add_job(
            "stats", self.config.stats_interval_ms / 1000, self.log_stats, run_immediately=False
        )
        scheduler.add_job(
            "health", self.config.health_interval_ms / 1000, self.health_check, run_immediately=False
        )
        return scheduler

    async def close(self) -> None:
        await self.client.close()
        await self.ledger.close()
