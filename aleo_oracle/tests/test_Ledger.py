"""Tests for the ledger utilities and the node client."""

import json
from unittest.mock import patch

import httpx
import pytest

from aleo_oracle.src.LedgerUtility import LedgerError, TransactionStatus, field, parse_u64, u8, u64, u128
from aleo_oracle.src.LedgerUtilityHttp import LedgerUtilityHttp
from aleo_oracle.src.LedgerUtilityLocalnet import LedgerUtilityLocalnet
from aleo_oracle.src.OracleClient import OracleClient

RPC_URL = "https://api.explorer.provable.com/v1/testnet"
EXECUTOR_URL = "http://executor:8080"


def http_ledger(handler, max_retries: int = 3) -> LedgerUtilityHttp:
    return LedgerUtilityHttp(
        RPC_URL,
        EXECUTOR_URL,
        "price_oracle_v2.aleo",
        max_retries=max_retries,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestLiterals:
    """Test Aleo literal encoding."""

    def test_encoders(self) -> None:
        assert u8(5) == "5u8"
        assert u64("1700000000000") == "1700000000000u64"
        assert u128(345090000000) == "345090000000u128"
        assert field(7) == "7field"

    def test_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="does not fit u8"):
            u8(256)
        with pytest.raises(ValueError):
            u64(-1)
        with pytest.raises(ValueError, match="not a field element"):
            field(-1)

    def test_parse_u64(self) -> None:
        assert parse_u64("1500000u64") == 1_500_000
        assert parse_u64('"42u64"') == 42
        with pytest.raises(ValueError, match="Not a u64 literal"):
            parse_u64("42u128")


class TestLedgerUtilityHttp:
    """Test the REST and executor backed ledger."""

    async def test_execute(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"transaction_id": "at1abc"})

        ledger = http_ledger(handler)
        tx_id = await ledger.execute("submit_price_simple", ["1u64", "2u128", "3u64"])

        assert tx_id == "at1abc"
        assert str(requests[0].url) == f"{EXECUTOR_URL}/execute"
        body = json.loads(requests[0].content)
        assert body["function"] == "submit_price_simple"
        assert body["inputs"] == ["1u64", "2u128", "3u64"]
        assert body["base_fee"] == 500_000

    async def test_execute_rejected(self) -> None:
        ledger = http_ledger(lambda request: httpx.Response(400, text="insufficient fee"))
        with pytest.raises(LedgerError, match="insufficient fee"):
            await ledger.execute("submit_price", [])

    async def test_execute_without_tx_id(self) -> None:
        ledger = http_ledger(lambda request: httpx.Response(200, json={}))
        with pytest.raises(LedgerError, match="no transaction id"):
            await ledger.execute("submit_price", [])

    async def test_reads_retried_on_transport_errors(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=42)

        with patch("aleo_oracle.src.LedgerUtilityHttp.BACKOFF_BASE", 0.0):
            assert await http_ledger(handler).latest_height() == 42
        assert len(attempts) == 3

    async def test_execute_not_retried_after_timeout(self) -> None:
        """A timed out execution is sent once and reported as failed."""
        posts = []

        def handler(request: httpx.Request) -> httpx.Response:
            posts.append(request)
            if len(posts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"transaction_id": "at1second"})

        with patch("aleo_oracle.src.LedgerUtilityHttp.BACKOFF_BASE", 0.0):
            with pytest.raises(LedgerError, match="after 1 attempts"):
                await http_ledger(handler).execute("submit_price", [])
        assert len(posts) == 1

    async def test_transport_errors_exhausted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with patch("aleo_oracle.src.LedgerUtilityHttp.BACKOFF_BASE", 0.0):
            with pytest.raises(LedgerError, match="after 2 attempts"):
                await http_ledger(handler, max_retries=2).latest_height()

    @pytest.mark.parametrize(
        "response, expected",
        [
            (httpx.Response(404), TransactionStatus.PENDING),
            (httpx.Response(200, json={"status": "accepted"}), TransactionStatus.CONFIRMED),
            (httpx.Response(200, json={"status": "rejected"}), TransactionStatus.FAILED),
            (httpx.Response(200, json={"status": "unknown"}), TransactionStatus.PENDING),
        ],
    )
    async def test_transaction_status(self, response, expected) -> None:
        ledger = http_ledger(lambda request: response)
        assert await ledger.get_transaction_status("at1abc") == expected

    async def test_transaction_status_server_error(self) -> None:
        ledger = http_ledger(lambda request: httpx.Response(500))
        with pytest.raises(LedgerError):
            await ledger.get_transaction_status("at1abc")

    async def test_balance(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json="2500000u64")

        assert await http_ledger(handler).get_balance("aleo1operator") == 2_500_000
        assert seen[0].url.path.endswith("/program/credits.aleo/mapping/account/aleo1operator")

    async def test_balance_unset(self) -> None:
        ledger = http_ledger(lambda request: httpx.Response(200, json=None))
        assert await ledger.get_balance("aleo1new") == 0

    async def test_latest_height(self) -> None:
        ledger = http_ledger(lambda request: httpx.Response(200, json=123456))
        assert await ledger.latest_height() == 123456


class TestLedgerUtilityLocalnet:
    """Test the in-memory ledger."""

    async def test_execute_and_confirm(self) -> None:
        ledger = LedgerUtilityLocalnet()
        tx_id = await ledger.execute("submit_price_simple", ["1u64"])

        assert tx_id.startswith("at1")
        assert ledger.executions_of("submit_price_simple")[0].inputs == ["1u64"]
        assert await ledger.get_transaction_status(tx_id) is TransactionStatus.CONFIRMED
        assert await ledger.latest_height() == 1

    async def test_manual_confirmation(self) -> None:
        ledger = LedgerUtilityLocalnet(auto_confirm=False)
        tx_id = await ledger.execute("submit_price", [])

        assert await ledger.get_transaction_status(tx_id) is TransactionStatus.PENDING
        ledger.set_status(tx_id, TransactionStatus.FAILED)
        assert await ledger.get_transaction_status(tx_id) is TransactionStatus.FAILED

    async def test_failing_function(self) -> None:
        ledger = LedgerUtilityLocalnet()
        ledger.failing_functions.add("submit_twap")
        with pytest.raises(LedgerError):
            await ledger.execute("submit_twap", [])


class TestOracleClient:
    """Test the relayer's node client."""

    def client(self, handler) -> OracleClient:
        return OracleClient(
            "http://node:3000/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

    async def test_get_price(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "pair": "ETH/USD",
                    "price": 3450.9,
                    "scaledPrice": "345090000000",
                    "timestamp": 1_700_000_000_000,
                    "sources": ["a", "b", "c"],
                    "sourceCount": 3,
                },
            )

        price = await self.client(handler).get_price("ETH/USD")
        assert seen[0].url.path == "/price/ETH-USD"
        assert price.scaled_price == 345090000000
        assert price.source_count == 3

    async def test_get_price_halted(self) -> None:
        client = self.client(lambda request: httpx.Response(503, json={"error": "Circuit breaker halted"}))
        assert await client.get_price("ETH/USD") is None

    async def test_get_price_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await self.client(handler).get_price("ETH/USD") is None

    async def test_get_price_malformed(self) -> None:
        client = self.client(lambda request: httpx.Response(200, json={"price": "abc"}))
        assert await client.get_price("ETH/USD") is None

    async def test_get_twap(self) -> None:
        client = self.client(lambda request: httpx.Response(200, json={"ledger": {"twap1h": "1"}}))
        assert await client.get_twap("BTC/USD") == {"ledger": {"twap1h": "1"}}

        missing = self.client(lambda request: httpx.Response(503, json={}))
        assert await missing.get_twap("BTC/USD") is None

    async def test_get_health(self) -> None:
        client = self.client(lambda request: httpx.Response(503, json={"status": "degraded"}))
        assert (await client.get_health())["status"] == "degraded"
