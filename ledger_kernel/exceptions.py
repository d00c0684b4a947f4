"""
Typed Exception Hierarchy for the ledger core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to tell a rejected input from a lost counter race
without parsing message strings.  Every error therefore:
  1. Has its own exception class (catch by type, not message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (not only in the message)

Example:
    try:
        service.override_status(transaction_id, "settled")
    except InvalidStatusError as e:
        api_response(code=e.code, value=e.value, allowed=e.allowed)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError
    |   +-- InvalidStatusError
    |   +-- MissingReferenceDateError
    |   +-- InvalidDocumentTypeError
    |   +-- InvalidDocumentNumberError
    |   +-- InvalidPaymentAmountError
    |   +-- PaymentDateBeforeTransactionError
    |   +-- InvalidPricingError
    |
    +-- TransactionError
    |   +-- TransactionNotFoundError
    |   +-- CounterpartyNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- TransactionVoidedError
    |   +-- PaymentVoidedError
    |   +-- TransactionFullyPaidError
    |   +-- TransactionNotDeletableError
    |   +-- OverpaymentError
    |
    +-- SequenceError
        +-- CounterContentionError
        +-- SequenceExhaustedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|------------------------------------
Validation   | INVALID_STATUS                | Status override not in enumeration
             | MISSING_REFERENCE_DATE        | No date for document numbering
             | INVALID_DOCUMENT_TYPE         | Unknown document prefix
             | INVALID_DOCUMENT_NUMBER       | Text does not match PO/SO-YYYYMM-NNNN
             | INVALID_PAYMENT_AMOUNT        | Payment amount missing or <= 0
             | PAYMENT_DATE_BEFORE_TRANSACTION | Paid before the document existed
             | INVALID_PRICING               | Negative, non-finite or over-precise pricing
-------------|-------------------------------|------------------------------------
Transaction  | TRANSACTION_NOT_FOUND         | Transaction ID doesn't exist
             | COUNTERPARTY_NOT_FOUND        | Supplier/customer ID doesn't exist
             | PAYMENT_NOT_FOUND             | Payment ID doesn't exist
             | TRANSACTION_VOIDED            | Mutating a voided transaction
             | PAYMENT_VOIDED                | Mutating a voided payment
             | TRANSACTION_FULLY_PAID        | Adding payment to a PAID document
             | TRANSACTION_NOT_DELETABLE     | Deleting a document with payments
             | OVERPAYMENT                   | Payments exceed total beyond tolerance
-------------|-------------------------------|------------------------------------
Sequence     | COUNTER_CONTENTION            | Counter update lost a race
             | SEQUENCE_EXHAUSTED            | More than 9999 numbers in a period

ConcurrencyError-style categories (SequenceError) are transient: the
document number generator retries them before giving up.
"""

from datetime import date
from decimal import Decimal


class LedgerError(Exception):
    """
    Base exception for all ledger core errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# Validation exceptions


class ValidationError(LedgerError):
    """Base exception for rejected inputs."""

    code: str = "VALIDATION_ERROR"


class InvalidStatusError(ValidationError):
    """Explicit status override is not a permitted status value."""

    code: str = "INVALID_STATUS"

    def __init__(self, value: object, allowed: tuple[str, ...]):
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Invalid status {value!r}; expected one of {', '.join(allowed)}"
        )


class MissingReferenceDateError(ValidationError):
    """A document number was requested without a reference date."""

    code: str = "MISSING_REFERENCE_DATE"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(
            f"Reference date is required to number a {document_type} document"
        )


class InvalidDocumentTypeError(ValidationError):
    """Document type is not one of the numbered document prefixes."""

    code: str = "INVALID_DOCUMENT_TYPE"

    def __init__(self, document_type: object, allowed: tuple[str, ...]):
        self.document_type = document_type
        self.allowed = allowed
        super().__init__(
            f"Unknown document type {document_type!r}; "
            f"expected one of {', '.join(allowed)}"
        )


class InvalidDocumentNumberError(ValidationError):
    """Text does not follow the document number wire format."""

    code: str = "INVALID_DOCUMENT_NUMBER"

    def __init__(self, document_no: str):
        self.document_no = document_no
        super().__init__(f"Malformed document number: {document_no!r}")


class InvalidPaymentAmountError(ValidationError):
    """Payment amount is missing, zero or negative."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount: object):
        self.amount = amount
        super().__init__(f"Payment amount must be positive, got {amount!r}")


class PaymentDateBeforeTransactionError(ValidationError):
    """Payment is dated before the transaction it settles."""

    code: str = "PAYMENT_DATE_BEFORE_TRANSACTION"

    def __init__(self, payment_date: date, transaction_date: date):
        self.payment_date = payment_date
        self.transaction_date = transaction_date
        super().__init__(
            f"Payment date {payment_date} is before transaction date "
            f"{transaction_date}"
        )


class InvalidPricingError(ValidationError):
    """Quantity, unit price, tax rate or item lines cannot be stored as given."""

    code: str = "INVALID_PRICING"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# Transaction exceptions


class TransactionError(LedgerError):
    """Base exception for transaction and payment state errors."""

    code: str = "TRANSACTION_ERROR"


class TransactionNotFoundError(TransactionError):
    """Transaction with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class CounterpartyNotFoundError(TransactionError):
    """Supplier or customer with given ID was not found."""

    code: str = "COUNTERPARTY_NOT_FOUND"

    def __init__(self, counterparty_id: str):
        self.counterparty_id = counterparty_id
        super().__init__(f"Counterparty not found: {counterparty_id}")


class PaymentNotFoundError(TransactionError):
    """Payment record with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class TransactionVoidedError(TransactionError):
    """Transaction is voided and can no longer change."""

    code: str = "TRANSACTION_VOIDED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} is voided")


class PaymentVoidedError(TransactionError):
    """Payment record is voided and can no longer change."""

    code: str = "PAYMENT_VOIDED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is voided")


class TransactionFullyPaidError(TransactionError):
    """Transaction is already PAID; no further payments are accepted."""

    code: str = "TRANSACTION_FULLY_PAID"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} is already paid in full")


class TransactionNotDeletableError(TransactionError):
    """Only active transactions without payments may be deleted."""

    code: str = "TRANSACTION_NOT_DELETABLE"

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Transaction {transaction_id} cannot be deleted: {reason}")


class OverpaymentError(TransactionError):
    """Payments would exceed the transaction total beyond tolerance."""

    code: str = "OVERPAYMENT"

    def __init__(
        self,
        transaction_id: str,
        total_amount: Decimal,
        paid_amount: Decimal,
        tolerance: Decimal,
    ):
        self.transaction_id = transaction_id
        self.total_amount = total_amount
        self.paid_amount = paid_amount
        self.tolerance = tolerance
        super().__init__(
            f"Payments {paid_amount} exceed total {total_amount} of "
            f"transaction {transaction_id} (tolerance {tolerance})"
        )


# Sequence exceptions


class SequenceError(LedgerError):
    """Base exception for document sequence allocation errors."""

    code: str = "SEQUENCE_ERROR"


class CounterContentionError(SequenceError):
    """
    Counter update lost a race with a concurrent allocation.

    Transient: callers retry.
    """

    code: str = "COUNTER_CONTENTION"

    def __init__(self, prefix: str, reason: str = "concurrent update"):
        self.prefix = prefix
        self.reason = reason
        super().__init__(f"Counter contention on {prefix}: {reason}")


class SequenceExhaustedError(SequenceError):
    """The four-digit sequence of a period has run out."""

    code: str = "SEQUENCE_EXHAUSTED"

    def __init__(self, prefix: str, value: int, maximum: int):
        self.prefix = prefix
        self.value = value
        self.maximum = maximum
        super().__init__(
            f"Sequence {prefix} reached {value}, above the maximum of {maximum}"
        )
