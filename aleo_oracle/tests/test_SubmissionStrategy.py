"""Unit tests for the submission strategies."""

from aleo_oracle.src.LedgerUtilityLocalnet import LedgerUtilityLocalnet
from aleo_oracle.src.OracleClient import NodePrice
from aleo_oracle.src.Signer import OracleSigner
from aleo_oracle.src.SubmissionStrategy import (
    MultiOperatorSubmission,
    SignedSubmission,
    SimpleSubmission,
    SubmissionContext,
    SubmissionStatus,
    run_strategies,
)

TIMESTAMP = 1_700_000_000_000


def plain_price(source_count: int = 5) -> NodePrice:
    return NodePrice(
        pair="ETH/USD",
        price=3450.90,
        scaled_price=345090000000,
        timestamp=TIMESTAMP,
        source_count=source_count,
    )


def signed_price() -> NodePrice:
    signer = OracleSigner(operator_address="aleo1operator", private_key="operator-secret")
    signed = signer.sign_price("ETH/USD", 345090000000, TIMESTAMP, 5)
    return NodePrice.from_dict("ETH/USD", {"price": 3450.90, **signed.to_dict()})


def context(price: NodePrice) -> SubmissionContext:
    return SubmissionContext(pair="ETH/USD", pair_id=1, price=price)


def strategies(consensus_mode: str = "simple", min_source_count: int = 3) -> list:
    return [
        SignedSubmission(),
        MultiOperatorSubmission(consensus_mode, min_source_count),
        SimpleSubmission(),
    ]


class TestStrategyInputs:
    """Test transition inputs."""

    def test_simple_inputs(self) -> None:
        assert SimpleSubmission().build_inputs(context(plain_price())) == [
            "1u64",
            "345090000000u128",
            "1700000000000u64",
        ]

    def test_multi_inputs_include_source_count(self) -> None:
        inputs = MultiOperatorSubmission("multi", 3).build_inputs(context(plain_price()))
        assert inputs[-1] == "5u8"

    def test_signed_inputs(self) -> None:
        price = signed_price()
        inputs = SignedSubmission().build_inputs(context(price))

        assert len(inputs) == 8
        assert inputs[4] == f"{price.signature_r}u128"
        assert inputs[6] == f"{price.message_field}field"
        assert inputs[7] == f"{price.nonce_hash}field"


class TestRunStrategies:
    """Test strategy selection and fallback."""

    async def test_unsigned_simple_mode(self) -> None:
        ledger = LedgerUtilityLocalnet()
        outcome = await run_strategies(strategies(), ledger, context(plain_price()))

        assert outcome.submitted
        assert outcome.strategy == "simple"
        assert [e.function for e in ledger.executions] == ["submit_price_simple"]

    async def test_multi_mode_with_enough_sources(self) -> None:
        ledger = LedgerUtilityLocalnet()
        outcome = await run_strategies(strategies("multi"), ledger, context(plain_price()))

        assert outcome.strategy == "multi-operator"
        assert ledger.executions[0].function == "submit_price"

    async def test_multi_mode_too_few_sources(self) -> None:
        ledger = LedgerUtilityLocalnet()
        outcome = await run_strategies(strategies("multi"), ledger, context(plain_price(2)))
        assert outcome.strategy == "simple"

    async def test_signed_price(self) -> None:
        ledger = LedgerUtilityLocalnet()
        outcome = await run_strategies(strategies(), ledger, context(signed_price()))

        assert outcome.strategy == "signed"
        assert outcome.tx_id == ledger.executions[0].tx_id
        assert ledger.executions[0].function == "submit_signed_price"

    async def test_signed_failure_falls_back_to_multi(self) -> None:
        """A failed signed submission is retried as submit_price."""
        ledger = LedgerUtilityLocalnet()
        ledger.failing_functions.add("submit_signed_price")
        ctx = context(signed_price())

        outcome = await run_strategies(strategies(), ledger, ctx)

        assert ctx.signed_failed
        assert outcome.submitted
        assert outcome.strategy == "multi-operator"
        assert [e.function for e in ledger.executions] == ["submit_price"]

    async def test_simple_failure_stops_chain(self) -> None:
        ledger = LedgerUtilityLocalnet()
        ledger.failing_functions.add("submit_price_simple")

        outcome = await run_strategies(strategies(), ledger, context(plain_price()))

        assert outcome.status is SubmissionStatus.FAILED
        assert "submit_price_simple" in outcome.reason
        assert ledger.executions == []

    async def test_unencodable_input_fails(self) -> None:
        ledger = LedgerUtilityLocalnet()
        price = plain_price()
        price.scaled_price = -1

        outcome = await SimpleSubmission().submit(ledger, context(price))
        assert outcome.status is SubmissionStatus.FAILED
        assert ledger.executions == []

    async def test_before_submit_hook(self) -> None:
        calls = []

        async def hook(ledger, ctx) -> None:
            calls.append(ctx.pair)

        ledger = LedgerUtilityLocalnet()
        strategy = MultiOperatorSubmission("multi", 3, on_before_submit=hook)
        outcome = await strategy.submit(ledger, context(plain_price()))

        assert outcome.submitted
        assert calls == ["ETH/USD"]
