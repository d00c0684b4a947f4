"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for purchases/orders (LedgerTransaction),
    their item lines (TransactionItem) and the payments/receipts settling
    them (PaymentRecord).
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.

Invariants enforced:
    - Exclusive ownership: PaymentRecord and TransactionItem rows belong to
      exactly one transaction and are deleted with it
      (cascade="all, delete-orphan", ON DELETE CASCADE).
    - Optimistic versioning: ``version_id`` is SQLAlchemy's version_id_col,
      so two writers reconciling the same transaction cannot both commit.
    - document_no is unique.

Failure modes:
    - StaleDataError when a concurrent writer bumped ``version_id`` first.
    - IntegrityError on duplicate document_no.

Audit relevance:
    tax_amount/total_amount/status and item subtotals are derived values written by the
    payment service from the amount and reconciliation engines; nothing
    else should set them.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import PaymentStatus, RecordStatus
from ledger_kernel.models.counterparty import Counterparty


class LedgerTransaction(TrackedBase):
    """
    A purchase (owed to a supplier) or an order (owed by a customer).

    Guarantees:
        - payments are loaded in ``line_no`` order (display order).
        - deleting the transaction deletes its payments.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        Index("idx_ledger_txn_kind_status", "kind", "record_status"),
        Index("idx_ledger_txn_counterparty", "counterparty_id"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    document_no: Mapped[str | None] = mapped_column(
        String(20), nullable=True, unique=True
    )

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("counterparties.id"),
        nullable=False,
    )

    # Purchase date / order date
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Delivery date for orders; receivables age from it
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Single-line pricing; None when the transaction is priced by item lines
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    tax_rate_percent: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 4), nullable=True
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("0")
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PaymentStatus.PENDING.value
    )

    record_status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=RecordStatus.ACTIVE.value
    )

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    counterparty: Mapped[Counterparty] = relationship(lazy="joined")

    payments: Mapped[list[PaymentRecord]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="PaymentRecord.line_no",
    )

    items: Mapped[list[TransactionItem]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionItem.line_no",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.document_no} {self.kind} {self.status}>"


class PaymentRecord(TrackedBase):
    """
    A payment against a purchase or a receipt against an order.

    ``note`` is owned by the reconciliation engine: it always carries the
    message for the parent's current derived status.
    """

    __tablename__ = "payment_records"
    __table_args__ = (
        Index("idx_payment_transaction", "transaction_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    # YYYYMM derived from payment_date
    accounting_period: Mapped[str] = mapped_column(String(6), nullable=False)

    method: Mapped[str | None] = mapped_column(String(30), nullable=True)

    reference_no: Mapped[str | None] = mapped_column(String(64), nullable=True)

    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=RecordStatus.ACTIVE.value
    )

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    transaction: Mapped[LedgerTransaction] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        return f"<PaymentRecord {self.line_no} {self.amount} {self.status}>"


class TransactionItem(TrackedBase):
    """
    One priced item line of a purchase or order.

    ``subtotal`` is quantity x unit_price rounded half-up to 2 places; the
    tax and total of the parent are summed over its lines.
    """

    __tablename__ = "transaction_items"
    __table_args__ = (
        Index("idx_item_transaction", "transaction_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    transaction: Mapped[LedgerTransaction] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<TransactionItem {self.line_no} {self.description} {self.subtotal}>"
