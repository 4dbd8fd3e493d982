"""LedgerUtilityLocalnet: In-memory ledger for local development."""

import logging
import secrets
from dataclasses import dataclass, field

from .LedgerUtility import LedgerError, LedgerUtility, TransactionStatus

logger = logging.getLogger(__name__)


@dataclass
class Execution:
    """A transition executed on the local ledger."""

    tx_id: str
    function: str
    inputs: list[str] = field(default_factory=list)


class LedgerUtilityLocalnet(LedgerUtility):
    """Ledger utility that records executions in memory.

    Transactions are confirmed on the next status lookup unless
    ``auto_confirm`` is off, in which case tests set statuses explicitly.

    :ivar executions: Every executed transition, in order.
    :ivar balance: Balance reported for any address, in microcredits.
    :ivar failing_functions: Transitions whose execution raises LedgerError.
    """

    def __init__(
        self,
        program_id: str = "price_oracle_v2.aleo",
        balance: int = 10_000_000_000,
        auto_confirm: bool = True,
    ) -> None:
        self.program_id = program_id
        self.balance = balance
        self.auto_confirm = auto_confirm
        self.height = 0
        self.executions: list[Execution] = []
        self.failing_functions: set[str] = set()
        self._statuses: dict[str, TransactionStatus] = {}

    async def execute(self, function: str, inputs: list[str]) -> str:
        if function in self.failing_functions:
            raise LedgerError(f"Execution of {function} failed")
        tx_id = f"at1{secrets.token_hex(29)}"
        self.executions.append(Execution(tx_id=tx_id, function=function, inputs=list(inputs)))
        self._statuses[tx_id] = TransactionStatus.PENDING
        logger.info(f"Localnet executed {self.program_id}/{function}: {tx_id}")
        return tx_id

    def set_status(self, tx_id: str, status: TransactionStatus) -> None:
        self._statuses[tx_id] = status

    def executions_of(self, function: str) -> list[Execution]:
        return [e for e in self.executions if e.function == function]

    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        status = self._statuses.get(tx_id, TransactionStatus.PENDING)
        if status is TransactionStatus.PENDING and self.auto_confirm and tx_id in self._statuses:
            self._statuses[tx_id] = TransactionStatus.CONFIRMED
            self.height += 1
            return TransactionStatus.CONFIRMED
        return status

    async def get_balance(self, address: str) -> int:
        return self.balance

    async def latest_height(self) -> int:
        return self.height
