"""ORM models for the ledger core."""

from ledger_kernel.models.counterparty import Counterparty, CounterpartyType
from ledger_kernel.models.sequence import DocumentSequenceCounter
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    PaymentRecord,
    TransactionItem,
)

__all__ = [
    "Counterparty",
    "CounterpartyType",
    "DocumentSequenceCounter",
    "LedgerTransaction",
    "PaymentRecord",
    "TransactionItem",
]
