"""
Module: ledger_kernel.models.sequence
Responsibility: Counter rows backing period-scoped document numbers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per prefix (e.g. "PO-202501"), created lazily on first use.
    - Rows are never deleted; ``current_value`` only ever grows.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class DocumentSequenceCounter(Base):
    """
    Document sequence counter table.

    Row-level locking on this table serialises concurrent allocations for
    the same prefix.
    """

    __tablename__ = "document_sequence_counters"

    # Document type + accounting period, e.g. "SO-202501"
    prefix: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
    )

    # Last issued sequence value
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
