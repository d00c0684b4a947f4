"""
Module: ledger_kernel.models.counterparty
Responsibility: ORM persistence for suppliers and customers -- the parties a
    purchase is owed to or an order is owed by.
Architecture position: Kernel > Models.  May import from db/base.py only.
Failure modes:
    - IntegrityError on duplicate counterparty code (uq_counterparty_code).
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class CounterpartyType(str, Enum):
    """Supplier (payables side) or customer (receivables side)."""

    SUPPLIER = "SUPPLIER"
    CUSTOMER = "CUSTOMER"


class Counterparty(TrackedBase):
    """
    A supplier or customer.

    Non-goals:
        - Contact details, credit limits and tax identifiers belong to the
          surrounding CRUD layer and are not modelled here.
    """

    __tablename__ = "counterparties"
    __table_args__ = (
        UniqueConstraint("code", name="uq_counterparty_code"),
        Index("idx_counterparty_type", "counterparty_type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    counterparty_type: Mapped[str] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Counterparty {self.code}: {self.name} ({self.counterparty_type})>"
