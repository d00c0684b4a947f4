"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import (
    CounterStore,
    InMemoryCounterStore,
    SqlCounterStore,
)

__all__ = [
    "BaseService",
    "CounterStore",
    "InMemoryCounterStore",
    "SqlCounterStore",
]
