"""LedgerUtility: Abstract base class for Aleo ledger interaction."""

from __future__ import annotations

from abc import abstractmethod
from enum import Enum

U8_MAX = 2**8 - 1
U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1


class LedgerError(Exception):
    """Raised when a ledger request fails or is rejected."""

    pass


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def _literal(value: int | str, suffix: str, maximum: int) -> str:
    number = int(value)
    if number < 0 or number > maximum:
        raise ValueError(f"{number} does not fit {suffix}")
    return f"{number}{suffix}"


def u8(value: int | str) -> str:
    return _literal(value, "u8", U8_MAX)


def u32(value: int | str) -> str:
    return _literal(value, "u32", U32_MAX)


def u64(value: int | str) -> str:
    return _literal(value, "u64", U64_MAX)


def u128(value: int | str) -> str:
    return _literal(value, "u128", U128_MAX)


def field(value: int | str) -> str:
    number = int(value)
    if number < 0:
        raise ValueError(f"{number} is not a field element")
    return f"{number}field"


def parse_u64(literal: str) -> int:
    """Parse an Aleo ``u64`` literal such as ``"1500000u64"``.

    :raises ValueError: If the literal is malformed.
    """
    text = literal.strip().strip('"')
    if not text.endswith("u64"):
        raise ValueError(f"Not a u64 literal: {literal}")
    return int(text[: -len("u64")])


class LedgerUtility:
    """Abstract base class for ledger client implementations.

    Provides the interface for executing program transitions, tracking
    transactions and reading the operator's balance.

    :ivar program_id: Program whose transitions are executed.
    """

    program_id: str

    @abstractmethod
    async def execute(self, function: str, inputs: list[str]) -> str:
        """Execute a program transition.

        :param function: Transition name (e.g., "submit_price_simple").
        :param inputs: Aleo literal inputs in transition order.
        :returns: Transaction id.
        :raises LedgerError: If the transaction could not be broadcast.
        """
        pass

    @abstractmethod
    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        """Look up a broadcast transaction.

        :param tx_id: Transaction id.
        :returns: Pending, confirmed or failed.
        :raises LedgerError: If the ledger could not be queried.
        """
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Public credits balance of an address in microcredits.

        :raises LedgerError: If the ledger could not be queried.
        """
        pass

    @abstractmethod
    async def latest_height(self) -> int:
        """Latest block height.

        :raises LedgerError: If the ledger could not be queried.
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
