"""
Module: ledger_engines.reconciliation
Responsibility:
    Derive a purchase's or order's payment status (PENDING / PARTIAL / PAID)
    from its total and the sum of its active payments, and keep every
    attached payment's note in step with that status.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Works on TransactionSnapshot values; the payment service applies the
    result to ORM rows.

Invariants enforced:
    - status is a pure function of (total, paid):
      paid == 0 -> PENDING; 0 < paid < total -> PARTIAL; paid >= total -> PAID.
    - Recomputed from scratch on every call, so removing a payment can move
      the status down.
    - After reconcile() every attached payment (voided ones included) carries
      the message of the derived status.
    - Idempotent: reconciling a reconciled snapshot yields an equal snapshot
      and no note updates.
    - Only ACTIVE payments count toward the paid amount.

Failure modes:
    - reconcile() never raises for missing numbers; None is treated as zero.
    - parse_status_override() raises InvalidStatusError for anything
      outside the fixed status enumeration.

Usage:
    from ledger_engines.reconciliation import reconcile

    result = reconcile(snapshot)
    result.transaction.status   # PaymentStatus.PARTIAL
    result.note_updates         # notes that actually changed
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from types import MappingProxyType
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.dtos import ZERO, PaymentStatus, TransactionSnapshot
from ledger_kernel.exceptions import InvalidStatusError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

DEFAULT_PAYMENT_NOTES: Mapping[PaymentStatus, str] = MappingProxyType({
    PaymentStatus.PENDING: "Awaiting payment",
    PaymentStatus.PARTIAL: "Partially paid",
    PaymentStatus.PAID: "Paid in full",
})

ALLOWED_STATUSES: tuple[str, ...] = tuple(s.value for s in PaymentStatus)


@dataclass(frozen=True)
class NoteUpdate:
    """A payment whose note changed during reconciliation."""

    payment_id: UUID | str
    old_note: str | None
    new_note: str


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Outcome of reconciling one transaction.

    Contract:
        ``transaction`` is a new snapshot; the input is never mutated.
        A negative ``balance`` is reported as-is and flagged with
        ``is_overpaid``.
    """

    transaction: TransactionSnapshot
    note_updates: tuple[NoteUpdate, ...]
    paid_amount: Decimal
    balance: Decimal
    is_overpaid: bool

    @property
    def status(self) -> PaymentStatus:
        return self.transaction.status

    @property
    def changed(self) -> bool:
        return bool(self.note_updates)


def derive_status(total: Decimal | None, paid: Decimal | None) -> PaymentStatus:
    """Status for a (total, paid) pair; None counts as zero."""
    total = total if total is not None else ZERO
    paid = paid if paid is not None else ZERO
    if paid <= ZERO:
        return PaymentStatus.PENDING
    if paid >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def status_note(
    status: PaymentStatus,
    notes: Mapping[PaymentStatus, str] | None = None,
) -> str:
    """The payment note for ``status``; falls back to the default message."""
    if notes and status in notes:
        return notes[status]
    return DEFAULT_PAYMENT_NOTES[status]


@traced_engine("reconciliation", "1.0", fingerprint_fields=("transaction",))
def reconcile(
    transaction: TransactionSnapshot,
    notes: Mapping[PaymentStatus, str] | None = None,
) -> ReconciliationResult:
    """
    Re-derive status and payment notes for ``transaction``.

    Args:
        transaction: Snapshot with its payments attached.
        notes: Optional status -> message overrides.

    Returns:
        ReconciliationResult with the updated snapshot and the note changes.
    """
    paid = transaction.paid_amount
    balance = transaction.total - paid
    status = derive_status(transaction.total, paid)
    message = status_note(status, notes)

    updates: list[NoteUpdate] = []
    payments = []
    for payment in transaction.payments or ():
        if payment.note != message:
            updates.append(NoteUpdate(payment.payment_id, payment.note, message))
            payment = replace(payment, note=message)
        payments.append(payment)

    if balance < ZERO:
        logger.warning(
            "transaction_overpaid",
            extra={
                "transaction_id": transaction.transaction_id,
                "document_no": transaction.document_no,
                "total_amount": transaction.total,
                "paid_amount": paid,
                "balance": balance,
            },
        )

    if status != transaction.status:
        logger.info(
            "payment_status_derived",
            extra={
                "transaction_id": transaction.transaction_id,
                "document_no": transaction.document_no,
                "old_status": transaction.status.value,
                "new_status": status.value,
                "paid_amount": paid,
            },
        )

    return ReconciliationResult(
        transaction=replace(transaction, status=status, payments=tuple(payments)),
        note_updates=tuple(updates),
        paid_amount=paid,
        balance=balance,
        is_overpaid=balance < ZERO,
    )


def parse_status_override(value: object) -> PaymentStatus:
    """
    Validate an explicit status override.

    Accepts the status names case-insensitively with surrounding whitespace
    trimmed, or a PaymentStatus member.

    Raises:
        InvalidStatusError: ``value`` is not one of PENDING, PARTIAL, PAID.
    """
    if isinstance(value, PaymentStatus):
        return value
    if not isinstance(value, str):
        raise InvalidStatusError(value, ALLOWED_STATUSES)
    candidate = value.strip().upper()
    if candidate not in ALLOWED_STATUSES:
        raise InvalidStatusError(value, ALLOWED_STATUSES)
    return PaymentStatus(candidate)
