"""
Module: ledger_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: line
    amounts, payment reconciliation and aging.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.domain, ledger_kernel.exceptions and the
    kernel logger.  MUST NOT import ledger_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``;
      dates are explicit parameters supplied by the services.
    - Decimal-only arithmetic for monetary amounts.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are traced via ``@traced_engine`` (see
    ``ledger_engines.tracer``), emitting LEDGER_ENGINE_TRACE records.
"""

from ledger_engines.aging import (
    AGING_BUCKETS,
    AgedTransaction,
    AgingBucket,
    AgingClassifier,
    AgingReport,
    CounterpartyBalance,
    age_transaction,
    filter_balances,
)
from ledger_engines.amounts import (
    LineAmounts,
    compute_amounts,
    line_subtotal,
    sum_amounts,
)
from ledger_engines.reconciliation import (
    DEFAULT_PAYMENT_NOTES,
    NoteUpdate,
    ReconciliationResult,
    derive_status,
    parse_status_override,
    reconcile,
)

__all__ = [
    "AGING_BUCKETS",
    "AgedTransaction",
    "AgingBucket",
    "AgingClassifier",
    "AgingReport",
    "CounterpartyBalance",
    "age_transaction",
    "filter_balances",
    "LineAmounts",
    "compute_amounts",
    "line_subtotal",
    "sum_amounts",
    "DEFAULT_PAYMENT_NOTES",
    "NoteUpdate",
    "ReconciliationResult",
    "derive_status",
    "parse_status_override",
    "reconcile",
]
