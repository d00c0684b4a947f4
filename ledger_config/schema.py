"""
LedgerSettings schema.

Runtime settings for the ledger core, parsed from YAML by
``ledger_config.loader``.  Frozen: a loaded settings object never changes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from ledger_kernel.domain.dtos import PaymentStatus

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_NOTES = {
    PaymentStatus.PENDING: "Awaiting payment",
    PaymentStatus.PARTIAL: "Partially paid",
    PaymentStatus.PAID: "Paid in full",
}


@dataclass(frozen=True)
class LedgerSettings:
    """
    Settings consumed by the payment service, numbering and logging.

    Guarantees:
        - ``payment_notes`` is read-only and has a message for every status.
        - Numeric limits are validated on construction.
    """

    database_url: str = "sqlite:///ledger.db"
    log_level: str = "INFO"
    overpayment_tolerance: Decimal = Decimal("0.01")
    counter_max_attempts: int = 5
    counter_retry_backoff_seconds: float = 0.05
    payment_notes: Mapping[PaymentStatus, str] = field(
        default_factory=lambda: dict(DEFAULT_NOTES)
    )

    def __post_init__(self) -> None:
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
        if self.overpayment_tolerance < 0:
            raise ValueError("overpayment_tolerance cannot be negative")
        if self.counter_max_attempts < 1:
            raise ValueError("counter_max_attempts must be at least 1")
        if self.counter_retry_backoff_seconds < 0:
            raise ValueError("counter_retry_backoff_seconds cannot be negative")

        notes = dict(DEFAULT_NOTES)
        notes.update(self.payment_notes)
        object.__setattr__(self, "log_level", self.log_level.upper())
        object.__setattr__(self, "payment_notes", MappingProxyType(notes))
