"""
Module: ledger_kernel.db.base
Responsibility: Declarative base for the ledger ORM models: UUID keys stored
    as text, the column type map for money and timestamps, and the
    TrackedBase mixin (timestamps plus acting user).
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    every model imports from here and this module imports no other layer.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as String(36) so SQLite and
      PostgreSQL hold identical values.
    - Ids given as text are normalised to their canonical UUID form before
      they reach SQL, so "ABC..." and "abc..." address the same row.
    - Money is Numeric(18, 2) unless a column states its own scale; float
      is never used for amounts.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID column stored as its 36-character text form.

    Binds UUID instances or UUID-shaped strings; loads UUID instances.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, UUID):
            value = UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return UUID(value) if value is not None else None


class Base(DeclarativeBase):
    """
    Declarative base for ledger tables.

    Annotation defaults:
        Decimal -> Numeric(18, 2), datetime -> DateTime(timezone=True),
        UUID -> UUIDString, int -> BigInteger (sequence counters only grow).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base for business records.

    ``created_at``/``updated_at`` are maintained by the database;
    ``created_by_id`` is whichever actor the service was handed, if any.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    created_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
