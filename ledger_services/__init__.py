"""
ledger_services -- stateful orchestration over the engines and kernel.

Responsibility:
    Services that hold database sessions, read the clock, allocate document
    numbers and publish events: DocumentNumberGenerator, PaymentService and
    AgingReportService.

Architecture position:
    Dependency direction:
        ledger_services/ -> ledger_engines/  (allowed)
        ledger_services/ -> ledger_kernel/   (allowed)
        ledger_engines/  -> ledger_services/ (FORBIDDEN)
        ledger_kernel/   -> ledger_services/ (FORBIDDEN)
"""

from ledger_services.aging_service import AgingFilter, AgingPage, AgingReportService
from ledger_services.document_numbering import (
    DOCUMENT_NUMBER_PATTERN,
    DocumentNumber,
    DocumentNumberGenerator,
    parse_document_number,
)
from ledger_services.payment_service import PaymentService

__all__ = [
    "AgingFilter",
    "AgingPage",
    "AgingReportService",
    "DOCUMENT_NUMBER_PATTERN",
    "DocumentNumber",
    "DocumentNumberGenerator",
    "parse_document_number",
    "PaymentService",
]
