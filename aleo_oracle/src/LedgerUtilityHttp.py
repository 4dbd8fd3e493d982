"""LedgerUtilityHttp: Ledger utility for the Aleo REST API and an executor service.

Reads (transaction status, balance, height) go to the Aleo node REST API.
Transitions are executed by an executor service that holds the operator
key, builds the proof, pays the fee and broadcasts the transaction.
"""

import asyncio
import logging
from typing import Any

import httpx

from .LedgerUtility import LedgerError, LedgerUtility, TransactionStatus, parse_u64

logger = logging.getLogger(__name__)

# Retry configuration for transient transport errors
MAX_RETRIES = 3
BACKOFF_BASE = 1.0
BACKOFF_MAX = 5.0

HTTP_NOT_FOUND = 404


class LedgerUtilityHttp(LedgerUtility):
    """Ledger utility backed by HTTP services.

    :ivar rpc_url: Aleo REST API root including the network
        (e.g., "https://api.explorer.provable.com/v1/testnet").
    :ivar executor_url: Executor service root.
    :ivar program_id: Program whose transitions are executed.
    :ivar base_fee: Base fee in microcredits.
    :ivar priority_fee: Priority fee in microcredits.
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        rpc_url: str,
        executor_url: str,
        program_id: str,
        base_fee: int = 500_000,
        priority_fee: int = 100_000,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP ledger utility.

        :param rpc_url: Aleo REST API root.
        :param executor_url: Executor service root.
        :param program_id: Program id (e.g., "price_oracle_v2.aleo").
        :param base_fee: Base fee in microcredits.
        :param priority_fee: Priority fee in microcredits.
        :param timeout: Per-request timeout in seconds.
        :param max_retries: Attempts for requests failing at the transport level.
        :param client: Optional HTTP client (created if omitted).
        """
        self.rpc_url = rpc_url.rstrip("/")
        self.executor_url = executor_url.rstrip("/")
        self.program_id = program_id
        self.base_fee = base_fee
        self.priority_fee = priority_fee
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _request(
        self, method: str, url: str, payload: Any = None, retry: bool = True
    ) -> httpx.Response:
        """Make a request, retrying transport errors with backoff.

        HTTP error responses are returned to the caller, not retried.

        :param retry: Whether transport errors are retried. Requests that are
            not idempotent must pass False.
        :raises LedgerError: If every attempt failed at the transport level.
        """
        attempts = self.max_retries if retry else 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                logger.debug(f"{method} {url} (attempt {attempt + 1})")
                response = await self._client.request(method, url, json=payload, timeout=self.timeout)
                logger.debug(f"Response: {response.status_code} {response.reason_phrase}")
                return response
            except httpx.RequestError as exc:
                last_error = exc
                logger.warning(
                    f"Ledger {method} {url} error: {exc} (attempt {attempt + 1}/{attempts})"
                )
            if attempt + 1 < attempts:
                await asyncio.sleep(min(BACKOFF_BASE * (1.5**attempt), BACKOFF_MAX))

        raise LedgerError(f"{method} {url} failed after {attempts} attempts: {last_error}")

    async def _get_json(self, path: str) -> Any:
        response = await self._request("GET", f"{self.rpc_url}{path}")
        if not response.is_success:
            raise LedgerError(f"GET {path} failed: {response.status_code} {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise LedgerError(f"GET {path} returned invalid JSON: {e}") from e

    async def execute(self, function: str, inputs: list[str]) -> str:
        """Execute a transition through the executor service.

        :param function: Transition name.
        :param inputs: Aleo literal inputs.
        :returns: Transaction id.
        :raises LedgerError: If the executor rejected or never answered the request.
        """
        payload = {
            "program_id": self.program_id,
            "function": function,
            "inputs": inputs,
            "base_fee": self.base_fee,
            "priority_fee": self.priority_fee,
        }
        logger.info(f"Executing {self.program_id}/{function}")
        # Single attempt: a timed out request may already have been broadcast
        response = await self._request("POST", f"{self.executor_url}/execute", payload, retry=False)
        if not response.is_success:
            raise LedgerError(
                f"Execution of {function} failed: {response.status_code} {response.text[:200]}"
            )
        try:
            tx_id = response.json()["transaction_id"]
        except (ValueError, KeyError, TypeError) as e:
            raise LedgerError(f"Executor returned no transaction id: {e}") from e
        if not tx_id:
            raise LedgerError("Executor returned an empty transaction id")
        return str(tx_id)

    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        """Confirmed-transaction lookup.

        Unknown transactions are still pending; accepted ones are confirmed;
        rejected ones failed.
        """
        response = await self._request("GET", f"{self.rpc_url}/transaction/confirmed/{tx_id}")
        if response.status_code == HTTP_NOT_FOUND:
            return TransactionStatus.PENDING
        if not response.is_success:
            raise LedgerError(f"Status lookup for {tx_id} failed: {response.status_code}")

        try:
            status = response.json().get("status")
        except (ValueError, AttributeError) as e:
            raise LedgerError(f"Status lookup for {tx_id} returned invalid JSON: {e}") from e

        if status == "accepted":
            return TransactionStatus.CONFIRMED
        if status == "rejected":
            return TransactionStatus.FAILED
        return TransactionStatus.PENDING

    async def get_balance(self, address: str) -> int:
        """Public balance from the ``credits.aleo`` account mapping (0 if unset)."""
        value = await self._get_json(f"/program/credits.aleo/mapping/account/{address}")
        if value is None:
            return 0
        try:
            return parse_u64(str(value))
        except ValueError as e:
            raise LedgerError(f"Unexpected balance value {value!r}") from e

    async def latest_height(self) -> int:
        value = await self._get_json("/latest/height")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise LedgerError(f"Unexpected height value {value!r}") from e

    async def close(self) -> None:
        await self._client.aclose()
