"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Load purchases and orders (with their payments and item lines) as
    TransactionSnapshot DTOs for the reconciliation and aging engines.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; returns snapshots, never ORM entities.
    - Payments and items are eagerly loaded so snapshots are complete without lazy I/O.

Failure modes:
    - TransactionNotFoundError from get_snapshot() for an unknown id.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ledger_kernel.domain.dtos import RecordStatus, TransactionKind, TransactionSnapshot
from ledger_kernel.exceptions import TransactionNotFoundError
from ledger_kernel.models.counterparty import Counterparty
from ledger_kernel.models.transaction import LedgerTransaction
from ledger_kernel.selectors.base import BaseSelector


def as_uuid(value: UUID | str) -> UUID:
    """Normalise an id given as text to UUID."""
    return value if isinstance(value, UUID) else UUID(str(value))


class TransactionSelector(BaseSelector):
    """
    Read access to ledger transactions.

    Usage:
        selector = TransactionSelector(session)
        snapshot = selector.get_snapshot(transaction_id)
        open_purchases = selector.open_snapshots(TransactionKind.PURCHASE)
    """

    def get_snapshot(self, transaction_id: UUID | str) -> TransactionSnapshot:
        """
        Load one transaction with its payments.

        Raises:
            TransactionNotFoundError: No transaction with that id exists.
        """
        model = self.session.execute(
            select(LedgerTransaction)
            .options(
                selectinload(LedgerTransaction.payments),
                selectinload(LedgerTransaction.items),
            )
            .where(LedgerTransaction.id == as_uuid(transaction_id))
        ).scalar_one_or_none()
        if model is None:
            raise TransactionNotFoundError(str(transaction_id))
        return TransactionSnapshot.from_model(model)

    def get_by_document_no(self, document_no: str) -> TransactionSnapshot | None:
        model = self.session.execute(
            select(LedgerTransaction)
            .options(
                selectinload(LedgerTransaction.payments),
                selectinload(LedgerTransaction.items),
            )
            .where(LedgerTransaction.document_no == document_no)
        ).scalar_one_or_none()
        return TransactionSnapshot.from_model(model) if model is not None else None

    def open_snapshots(
        self,
        kind: TransactionKind,
        counterparty_id: UUID | str | None = None,
        counterparty_name: str | None = None,
    ) -> list[TransactionSnapshot]:
        """
        Load the ACTIVE transactions of one kind.

        Fully paid transactions are included: the aging engine drops those
        with a zero balance and reports overpaid ones.

        Args:
            kind: PURCHASE (payables) or ORDER (receivables).
            counterparty_id: Restrict to one supplier/customer.
            counterparty_name: Case-insensitive substring match on the
                counterparty name.
        """
        stmt = (
            select(LedgerTransaction)
            .join(LedgerTransaction.counterparty)
            .options(
                selectinload(LedgerTransaction.payments),
                selectinload(LedgerTransaction.items),
            )
            .where(
                LedgerTransaction.kind == TransactionKind(kind).value,
                LedgerTransaction.record_status == RecordStatus.ACTIVE.value,
            )
            .order_by(LedgerTransaction.transaction_date, LedgerTransaction.document_no)
        )
        if counterparty_id is not None:
            stmt = stmt.where(
                LedgerTransaction.counterparty_id == as_uuid(counterparty_id)
            )
        if counterparty_name:
            stmt = stmt.where(Counterparty.name.ilike(f"%{counterparty_name}%"))

        models = self.session.execute(stmt).unique().scalars().all()
        return [TransactionSnapshot.from_model(m) for m in models]
