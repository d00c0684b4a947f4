"""
DocumentNumberGenerator -- period-scoped document numbers.

Responsibility:
    Issues purchase and order numbers of the form ``PREFIX-YYYYMM-NNNN``
    (``PO-202501-0007``) from an injected counter store, and parses them
    back.

Architecture position:
    Services -- stateful orchestration over a kernel CounterStore.

Invariants enforced:
    - At most one allocation per sequence value: every number comes from
      ``counter_store.increment_and_get(prefix)``, which is atomic.
    - Numbers under one prefix are strictly increasing and never repeat.
    - Inputs are validated before the counter is touched.
    - The wire format ``^(PO|SO)-\\d{6}-\\d{4}$`` is preserved exactly.

Failure modes:
    - MissingReferenceDateError: no reference date (no silent default).
    - InvalidDocumentTypeError: type other than PO or SO.
    - CounterContentionError: the store kept losing races after
      ``max_attempts`` tries.
    - SequenceExhaustedError: the period already issued 9999 numbers.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.dtos import TransactionKind
from ledger_kernel.exceptions import (
    CounterContentionError,
    InvalidDocumentNumberError,
    InvalidDocumentTypeError,
    MissingReferenceDateError,
    SequenceExhaustedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.sequence_service import CounterStore

logger = get_logger("services.document_numbering")

DOCUMENT_TYPES: tuple[str, ...] = tuple(k.document_prefix for k in TransactionKind)

DOCUMENT_NUMBER_PATTERN = re.compile(r"^(PO|SO)-(\d{6})-(\d{4})$")

MAX_SEQUENCE = 9999


@dataclass(frozen=True)
class DocumentNumber:
    """A parsed document number."""

    document_type: str
    period: str
    sequence: int

    @property
    def prefix(self) -> str:
        return f"{self.document_type}-{self.period}"

    def __str__(self) -> str:
        return f"{self.prefix}-{self.sequence:04d}"


def format_period(reference_date: date) -> str:
    """``YYYYMM`` of a date."""
    return f"{reference_date.year:04d}{reference_date.month:02d}"


def parse_document_number(text: str) -> DocumentNumber:
    """
    Split a document number into type, period and sequence.

    Raises:
        InvalidDocumentNumberError: ``text`` does not match the wire format.
    """
    match = DOCUMENT_NUMBER_PATTERN.match(text) if isinstance(text, str) else None
    if match is None:
        raise InvalidDocumentNumberError(str(text))
    document_type, period, sequence = match.groups()
    return DocumentNumber(document_type, period, int(sequence))


class DocumentNumberGenerator:
    """
    Issues document numbers from a counter store.

    Contract:
        ``generate(document_type, reference_date)`` returns the next number
        for ``<type>-<YYYYMM>``.  The counter store is injected; the
        generator holds no counter state of its own.

    Guarantees:
        - Transient ``CounterContentionError`` is retried with linear
          backoff and only surfaces after ``max_attempts`` failures.
        - Gaps are possible (a number whose document is never saved is not
          reissued); duplicates are not.

    Usage:
        generator = DocumentNumberGenerator(InMemoryCounterStore())
        generator.generate("PO", date(2025, 1, 15))  # "PO-202501-0001"
    """

    def __init__(
        self,
        counter_store: CounterStore,
        max_attempts: int = 5,
        retry_backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._counter_store = counter_store
        self._max_attempts = max_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, counter_store: CounterStore, settings: LedgerSettings,
    ) -> DocumentNumberGenerator:
        """Generator using the configured attempt limit and backoff."""
        return cls(
            counter_store,
            max_attempts=settings.counter_max_attempts,
            retry_backoff_seconds=settings.counter_retry_backoff_seconds,
        )

    def generate(self, document_type: str, reference_date: date | None) -> str:
        """
        Issue the next number for ``document_type`` in the month of
        ``reference_date``.

        Preconditions:
            ``document_type`` is PO or SO (case-insensitive);
            ``reference_date`` is not None.

        Postconditions:
            The counter for the prefix was incremented exactly once per
            successful attempt.

        Raises:
            InvalidDocumentTypeError, MissingReferenceDateError,
            CounterContentionError, SequenceExhaustedError.
        """
        if not isinstance(document_type, str) or (
            document_type.strip().upper() not in DOCUMENT_TYPES
        ):
            raise InvalidDocumentTypeError(document_type, DOCUMENT_TYPES)
        doc_type = document_type.strip().upper()

        if reference_date is None:
            raise MissingReferenceDateError(doc_type)

        prefix = f"{doc_type}-{format_period(reference_date)}"
        value = self._allocate(prefix)

        if value > MAX_SEQUENCE:
            logger.error(
                "document_sequence_exhausted",
                extra={"prefix": prefix, "value": value, "maximum": MAX_SEQUENCE},
            )
            raise SequenceExhaustedError(prefix, value, MAX_SEQUENCE)

        document_no = f"{prefix}-{value:04d}"
        with LogContext.bind(document_no=document_no):
            logger.info(
                "document_number_issued",
                extra={"prefix": prefix, "sequence": value},
            )
        return document_no

    def generate_for(self, kind: TransactionKind | str, reference_date: date | None) -> str:
        """Issue the next number for a purchase (PO) or order (SO)."""
        return self.generate(TransactionKind(kind).document_prefix, reference_date)

    def _allocate(self, prefix: str) -> int:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._counter_store.increment_and_get(prefix)
            except CounterContentionError as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "document_number_contention_exhausted",
                        extra={
                            "prefix": prefix,
                            "attempts": attempt,
                            "reason": exc.reason,
                        },
                    )
                    raise
                logger.warning(
                    "document_number_contention_retry",
                    extra={
                        "prefix": prefix,
                        "attempt": attempt,
                        "reason": exc.reason,
                    },
                )
                if self._retry_backoff_seconds > 0:
                    self._sleep(self._retry_backoff_seconds * attempt)
        raise AssertionError("unreachable")  # pragma: no cover
