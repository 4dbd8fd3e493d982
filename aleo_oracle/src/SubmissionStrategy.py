"""SubmissionStrategy: Ordered ways of publishing a price to the ledger.

Strategies are tried in order; the first one that applies is used:

1. ``SignedSubmission`` - ``submit_signed_price`` when the price carries a
   ledger-encodable signature.
2. ``MultiOperatorSubmission`` - ``submit_price`` in multi-operator mode
   with enough sources, or when the signed submission failed in transport.
3. ``SimpleSubmission`` - ``submit_price_simple``; the ledger derives the
   submitter from the transaction itself.

Each attempt yields a typed outcome instead of raising.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from .LedgerUtility import LedgerError, LedgerUtility, field, u8, u64, u128
from .OracleClient import NodePrice

logger = logging.getLogger(__name__)


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SubmissionOutcome:
    """Result of one strategy attempt.

    :ivar status: Submitted, skipped (did not apply) or failed.
    :ivar strategy: Name of the strategy.
    :ivar tx_id: Transaction id when submitted.
    :ivar reason: Why the attempt was skipped or failed.
    """

    status: SubmissionStatus
    strategy: str
    tx_id: str | None = None
    reason: str | None = None

    @property
    def submitted(self) -> bool:
        return self.status is SubmissionStatus.SUBMITTED


@dataclass
class SubmissionContext:
    """Per-pair state shared by the strategies of one attempt.

    :ivar signed_failed: Set once a signed submission failed in transport.
    """

    pair: str
    pair_id: int
    price: NodePrice
    signed_failed: bool = False


class SubmissionStrategy(ABC):
    """A ledger transition used to publish prices.

    :cvar name: Strategy name used in logs and outcomes.
    :cvar function: Transition executed.
    :cvar fallback_on_failure: Whether a transport failure lets later strategies run.
    """

    name: str = ""
    function: str = ""
    fallback_on_failure: bool = False

    @abstractmethod
    def applies(self, ctx: SubmissionContext) -> bool:
        pass

    @abstractmethod
    def build_inputs(self, ctx: SubmissionContext) -> list[str]:
        pass

    async def before_submit(self, ledger: LedgerUtility, ctx: SubmissionContext) -> None:
        """Hook run right before the transition is executed."""
        pass

    async def submit(self, ledger: LedgerUtility, ctx: SubmissionContext) -> SubmissionOutcome:
        """Execute the transition if the strategy applies.

        :param ledger: Ledger to execute on.
        :param ctx: Submission context.
        :returns: SubmissionOutcome.
        """
        if not self.applies(ctx):
            return SubmissionOutcome(SubmissionStatus.SKIPPED, self.name, reason="not applicable")

        try:
            inputs = self.build_inputs(ctx)
        except ValueError as e:
            logger.error(f"{ctx.pair}: Cannot encode {self.function} inputs: {e}")
            return SubmissionOutcome(SubmissionStatus.FAILED, self.name, reason=str(e))

        logger.info(f"Submitting {ctx.pair} price ({self.name}): {ctx.price.scaled_price}")
        try:
            await self.before_submit(ledger, ctx)
            tx_id = await ledger.execute(self.function, inputs)
        except LedgerError as e:
            logger.error(f"Failed {self.name} submit {ctx.pair}: {e}")
            return SubmissionOutcome(SubmissionStatus.FAILED, self.name, reason=str(e))

        logger.info(f"Transaction submitted: {tx_id}")
        return SubmissionOutcome(SubmissionStatus.SUBMITTED, self.name, tx_id=tx_id)


class SignedSubmission(SubmissionStrategy):
    name = "signed"
    function = "submit_signed_price"
    fallback_on_failure = True

    def applies(self, ctx: SubmissionContext) -> bool:
        return ctx.price.has_ledger_signature

    def build_inputs(self, ctx: SubmissionContext) -> list[str]:
        price = ctx.price
        return [
            u64(ctx.pair_id),
            u128(price.scaled_price),
            u64(price.timestamp),
            u8(price.source_count),
            u128(price.signature_r),
            u128(price.signature_s),
            field(price.message_field),
            field(price.nonce_hash),
        ]


class MultiOperatorSubmission(SubmissionStrategy):
    """``submit_price`` with the source count.

    :ivar consensus_mode: "simple" or "multi".
    :ivar min_source_count: Sources required in multi mode.
    """

    name = "multi-operator"
    function = "submit_price"

    def __init__(
        self,
        consensus_mode: str,
        min_source_count: int,
        on_before_submit: Callable[[LedgerUtility, SubmissionContext], Awaitable[None]] | None = None,
    ) -> None:
        self.consensus_mode = consensus_mode
        self.min_source_count = min_source_count
        self._on_before_submit = on_before_submit

    def applies(self, ctx: SubmissionContext) -> bool:
        if ctx.signed_failed:
            return True
        return self.consensus_mode == "multi" and ctx.price.source_count >= self.min_source_count

    def build_inputs(self, ctx: SubmissionContext) -> list[str]:
        price = ctx.price
        return [
            u64(ctx.pair_id),
            u128(price.scaled_price),
            u64(price.timestamp),
            u8(price.source_count),
        ]

    async def before_submit(self, ledger: LedgerUtility, ctx: SubmissionContext) -> None:
        if self._on_before_submit is not None:
            await self._on_before_submit(ledger, ctx)


class SimpleSubmission(SubmissionStrategy):
    name = "simple"
    function = "submit_price_simple"

    def applies(self, ctx: SubmissionContext) -> bool:
        return True

    def build_inputs(self, ctx: SubmissionContext) -> list[str]:
        return [
            u64(ctx.pair_id),
            u128(ctx.price.scaled_price),
            u64(ctx.price.timestamp),
        ]


async def run_strategies(
    strategies: list[SubmissionStrategy], ledger: LedgerUtility, ctx: SubmissionContext
) -> SubmissionOutcome:
    """Try strategies in order.

    Skipped strategies pass to the next one. A failure stops the chain
    unless the strategy allows a fallback, in which case later strategies
    see ``ctx.signed_failed`` set.

    :returns: The deciding outcome.
    """
    outcome = SubmissionOutcome(SubmissionStatus.SKIPPED, "none", reason="no strategy applied")
    for strategy in strategies:
        outcome = await strategy.submit(ledger, ctx)
        if outcome.status is SubmissionStatus.SKIPPED:
            continue
        if outcome.status is SubmissionStatus.FAILED and strategy.fallback_on_failure:
            logger.info(f"Falling back from {strategy.name} submission for {ctx.pair}")
            ctx.signed_failed = True
            continue
        return outcome
    return outcome
