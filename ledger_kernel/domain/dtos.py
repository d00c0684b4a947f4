"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable snapshots that flow through the calculation
    engines: TransactionSnapshot (a purchase or order with its payments),
    PaymentSnapshot (one payment or receipt) and ItemLine (one priced item
    line), plus the status
    enumerations shared by engines, models and services.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service/selector layer (never from engine logic).

Invariants enforced:
    - Engines accept and return snapshots, never ORM entities.
    - Monetary fields are Decimal; None is normalised to zero by the
      derived properties so reconciliation never fails on missing numbers.

Data flow:
    LedgerTransaction (ORM) -> TransactionSnapshot -> reconcile/age -> result
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from ledger_kernel.models.transaction import (
        LedgerTransaction as LedgerTransactionModel,
    )
    from ledger_kernel.models.transaction import (
        PaymentRecord as PaymentRecordModel,
    )
    from ledger_kernel.models.transaction import (
        TransactionItem as TransactionItemModel,
    )

ZERO = Decimal("0")


class TransactionKind(str, Enum):
    """
    Which side of the business a transaction sits on.

    Contract:
        PURCHASE is owed to a supplier (payables); ORDER is owed by a
        customer (receivables).  The kind fixes the document prefix and
        the date that aging is measured from.
    """

    PURCHASE = "PURCHASE"
    ORDER = "ORDER"

    @property
    def document_prefix(self) -> str:
        return "PO" if self is TransactionKind.PURCHASE else "SO"


class PaymentStatus(str, Enum):
    """
    Derived payment status of a transaction.

    Contract:
        A pure function of (total, paid); recomputed from scratch on every
        payment change, so it can move down as well as up.
    """

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class RecordStatus(str, Enum):
    """Lifecycle of a transaction or payment row: ACTIVE -> VOIDED (one-way)."""

    ACTIVE = "ACTIVE"
    VOIDED = "VOIDED"


@dataclass(frozen=True)
class PaymentSnapshot:
    """
    One payment (purchase) or receipt (order) attached to a transaction.

    Only ACTIVE payments count toward the paid amount; VOIDED ones are kept
    for display.
    """

    payment_id: UUID | str
    amount: Decimal | None
    payment_date: date | None = None
    method: str | None = None
    note: str | None = None
    status: RecordStatus = RecordStatus.ACTIVE
    reference_no: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    @property
    def effective_amount(self) -> Decimal:
        """Amount counted toward the paid total (zero when voided or unset)."""
        if not self.is_active or self.amount is None:
            return ZERO
        return self.amount

    @classmethod
    def from_model(cls, model: PaymentRecordModel) -> PaymentSnapshot:
        return cls(
            payment_id=model.id,
            amount=model.amount,
            payment_date=model.payment_date,
            method=model.method,
            note=model.note,
            status=RecordStatus(model.status),
            reference_no=model.reference_no,
        )


@dataclass(frozen=True)
class ItemLine:
    """
    One item line of a purchase or order.

    Passed in with ``subtotal`` unset; snapshots of stored lines carry the
    2-place subtotal.
    """

    description: str
    quantity: int
    unit_price: Decimal | int | str
    subtotal: Decimal | None = None

    @classmethod
    def from_model(cls, model: TransactionItemModel) -> ItemLine:
        return cls(
            description=model.description,
            quantity=model.quantity,
            unit_price=model.unit_price,
            subtotal=model.subtotal,
        )


@dataclass(frozen=True)
class TransactionSnapshot:
    """
    A purchase or order as seen by the engines.

    Contract:
        Immutable.  ``payments`` keeps display order; the paid sum does not
        depend on it.

    Guarantees:
        - ``paid_amount`` sums ACTIVE payments only, treating None as zero.
        - ``balance = total - paid`` is never clamped; a negative balance
          means overpayment.
        - ``aging_reference_date`` is the purchase date for purchases and
          the delivery (due) date for orders.
    """

    transaction_id: UUID | str
    kind: TransactionKind
    counterparty_id: UUID | str | None
    transaction_date: date | None
    total_amount: Decimal | None
    counterparty_name: str | None = None
    document_no: str | None = None
    due_date: date | None = None
    tax_amount: Decimal | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    record_status: RecordStatus = RecordStatus.ACTIVE
    payments: tuple[PaymentSnapshot, ...] = field(default_factory=tuple)
    items: tuple[ItemLine, ...] = field(default_factory=tuple)

    @property
    def total(self) -> Decimal:
        return self.total_amount if self.total_amount is not None else ZERO

    @property
    def paid_amount(self) -> Decimal:
        return sum((p.effective_amount for p in self.payments or ()), ZERO)

    @property
    def balance(self) -> Decimal:
        return self.total - self.paid_amount

    @property
    def is_voided(self) -> bool:
        return self.record_status == RecordStatus.VOIDED

    @property
    def aging_reference_date(self) -> date | None:
        if self.kind == TransactionKind.ORDER:
            return self.due_date
        return self.transaction_date

    @classmethod
    def from_model(cls, model: LedgerTransactionModel) -> TransactionSnapshot:
        counterparty = model.counterparty
        return cls(
            transaction_id=model.id,
            kind=TransactionKind(model.kind),
            counterparty_id=model.counterparty_id,
            counterparty_name=counterparty.name if counterparty is not None else None,
            document_no=model.document_no,
            transaction_date=model.transaction_date,
            due_date=model.due_date,
            total_amount=model.total_amount,
            tax_amount=model.tax_amount,
            status=PaymentStatus(model.status),
            record_status=RecordStatus(model.record_status),
            payments=tuple(PaymentSnapshot.from_model(p) for p in model.payments),
            items=tuple(ItemLine.from_model(i) for i in model.items),
        )
