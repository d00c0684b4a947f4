"""
PaymentService -- purchases, orders and the payments that settle them.

Responsibility:
    Binds the pure engines to persistence: prices a transaction with the
    amounts engine, numbers it with the DocumentNumberGenerator, records,
    removes and voids payments, and after every payment change applies the
    reconciliation result (status plus payment notes) to the ORM rows.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Receives its session, numbering, clock, event bus and settings from the
    caller; never constructs them.

Invariants enforced:
    - Status and payment notes are re-derived after every add, remove and
      void, so notes always match the current status.
    - Only ACTIVE payments count toward the paid amount.
    - Payments may exceed the total by at most ``overpayment_tolerance``.
    - A payment cannot predate its transaction.
    - Voiding is one-way; voided rows are kept for display.
    - The service flushes and never commits.

Failure modes:
    - ValidationError subclasses for rejected input (raised before any
      mutation).
    - TransactionError subclasses for lifecycle violations.
    - SequenceError subclasses from document numbering.

Audit relevance:
    Payment, void and override operations publish LedgerEvent records on
    the injected EventBus; the caller dispatches them after commit.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, NamedTuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_engines.amounts import (
    MONEY_QUANTUM,
    LineAmounts,
    Number,
    compute_amounts,
    line_subtotal,
    sum_amounts,
    to_decimal,
)
from ledger_engines.reconciliation import (
    ReconciliationResult,
    parse_status_override,
    reconcile,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    ZERO,
    ItemLine,
    PaymentSnapshot,
    PaymentStatus,
    RecordStatus,
    TransactionKind,
    TransactionSnapshot,
)
from ledger_kernel.domain.events import EventBus, LedgerEvent, LedgerEventType
from ledger_kernel.exceptions import (
    CounterpartyNotFoundError,
    InvalidPaymentAmountError,
    InvalidPricingError,
    MissingReferenceDateError,
    OverpaymentError,
    PaymentDateBeforeTransactionError,
    PaymentNotFoundError,
    PaymentVoidedError,
    TransactionFullyPaidError,
    TransactionNotDeletableError,
    TransactionNotFoundError,
    TransactionVoidedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.counterparty import Counterparty
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    PaymentRecord,
    TransactionItem,
)
from ledger_kernel.selectors.transaction_selector import TransactionSelector, as_uuid
from ledger_kernel.services.base import BaseService
from ledger_services.document_numbering import DocumentNumberGenerator, format_period

logger = get_logger("services.payment")

# Scales of the columns that store pricing inputs
PRICE_PLACES = 4
RATE_PLACES = 4


class _Pricing(NamedTuple):
    quantity: int | None
    unit_price: Decimal | None
    tax_rate_percent: Decimal | None
    items: tuple[ItemLine, ...]
    amounts: LineAmounts


def _stored_decimal(
    field: str,
    value: Number | None,
    places: int,
    allow_negative: bool = False,
) -> Decimal | None:
    """Validate a pricing input against the scale of the column storing it."""
    try:
        number = to_decimal(value)
    except ValueError as exc:
        raise InvalidPricingError(field, value, "not a finite number") from exc
    if number is None:
        return None
    if number < ZERO and not allow_negative:
        raise InvalidPricingError(field, value, "must not be negative")
    if number.normalize().as_tuple().exponent < -places:
        raise InvalidPricingError(field, value, f"more than {places} decimal places")
    return number


def _price(
    quantity: Number | None,
    unit_price: Number | None,
    tax_rate_percent: Number | None,
    items: Iterable[ItemLine] | None,
) -> _Pricing:
    """
    Price a transaction from one quantity x unit price, or from item lines.

    Item lines keep their own 2-place subtotal; the transaction tax and
    total are the sums of the per-line amounts.
    """
    rate = _stored_decimal(
        "tax_rate_percent", tax_rate_percent, RATE_PLACES, allow_negative=True
    )
    if items is None:
        qty = _stored_decimal("quantity", quantity, 0)
        price = _stored_decimal("unit_price", unit_price, PRICE_PLACES)
        qty = int(qty) if qty is not None else None
        return _Pricing(qty, price, rate, (), compute_amounts(qty, price, rate))

    if quantity is not None or unit_price is not None:
        raise InvalidPricingError(
            "items", items, "give item lines or quantity and unit price, not both"
        )
    lines: list[ItemLine] = []
    for item in items:
        description = (item.description or "").strip()
        if not description:
            raise InvalidPricingError("description", item.description, "must not be blank")
        qty = _stored_decimal("quantity", item.quantity, 0)
        price = _stored_decimal("unit_price", item.unit_price, PRICE_PLACES)
        if qty is None or price is None:
            raise InvalidPricingError("items", item, "item lines need quantity and unit price")
        lines.append(ItemLine(description, int(qty), price, line_subtotal(qty, price)))
    if not lines:
        raise InvalidPricingError("items", lines, "at least one item line is required")

    amounts = sum_amounts(compute_amounts(i.quantity, i.unit_price, rate) for i in lines)
    return _Pricing(None, None, rate, tuple(lines), amounts)


class PaymentService(BaseService):
    """
    Write-side operations on purchases, orders and their payments.

    Contract:
        Every public method works inside the caller's transaction and
        leaves the session flushed.  Transaction-level operations return a
        fresh TransactionSnapshot.

    Guarantees:
        - The transaction row is locked (``SELECT ... FOR UPDATE`` where the
          database supports it) before its payments change.
        - Validation happens before mutation; a rejected call leaves the
          session untouched.

    Non-goals:
        - Does NOT commit, dispatch events, or send notifications.

    Usage:
        service = PaymentService(session, numbering, clock, bus, settings)
        purchase = service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, date(2025, 1, 15),
            quantity=10, unit_price="100", tax_rate_percent=5,
        )
        service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))
    """

    def __init__(
        self,
        session: Session,
        numbering: DocumentNumberGenerator,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        settings: LedgerSettings | None = None,
    ):
        super().__init__(session)
        self._numbering = numbering
        self._clock = clock or SystemClock()
        self._event_bus = event_bus
        self._settings = settings or LedgerSettings()
        self._selector = TransactionSelector(session)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        kind: TransactionKind | str,
        counterparty_id: UUID | str,
        transaction_date: date | None,
        quantity: int | None = None,
        unit_price: Number | None = None,
        tax_rate_percent: Number | None = None,
        due_date: date | None = None,
        actor_id: UUID | None = None,
        items: Iterable[ItemLine] | None = None,
    ) -> TransactionSnapshot:
        """
        Create a purchase or order, price it and give it a document number.

        Pricing is either one ``quantity`` x ``unit_price`` or a list of
        ``items``; ``tax_rate_percent`` applies to every line.

        Preconditions:
            ``transaction_date`` is set; the counterparty exists.

        Postconditions:
            The transaction is flushed with status PENDING and a
            ``PO-``/``SO-`` number in the month of ``transaction_date``.

        Raises:
            MissingReferenceDateError: no transaction date.
            InvalidPricingError: negative, non-finite or over-precise
                pricing, or both pricing forms given.
            CounterpartyNotFoundError: unknown counterparty.
            SequenceError: document numbering failed.
        """
        kind = TransactionKind(kind)
        if transaction_date is None:
            raise MissingReferenceDateError(kind.document_prefix)
        pricing = _price(quantity, unit_price, tax_rate_percent, items)

        counterparty = self.session.get(Counterparty, as_uuid(counterparty_id))
        if counterparty is None:
            raise CounterpartyNotFoundError(str(counterparty_id))

        document_no = self._numbering.generate_for(kind, transaction_date)

        model = LedgerTransaction(
            kind=kind.value,
            document_no=document_no,
            counterparty_id=counterparty.id,
            transaction_date=transaction_date,
            due_date=due_date,
            status=PaymentStatus.PENDING.value,
            record_status=RecordStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        self._apply_pricing(model, pricing)
        amounts = pricing.amounts
        model.counterparty = counterparty
        self.session.add(model)
        self.session.flush()

        self._apply_reconciliation(model)

        with LogContext.bind(transaction_id=str(model.id), document_no=document_no):
            logger.info(
                "transaction_created",
                extra={
                    "kind": kind.value,
                    "counterparty_id": counterparty.id,
                    "tax_amount": amounts.tax_amount,
                    "total_amount": amounts.total_amount,
                    "item_count": len(pricing.items),
                },
            )
        return TransactionSnapshot.from_model(model)

    def get_transaction(self, transaction_id: UUID | str) -> TransactionSnapshot:
        return self._selector.get_snapshot(transaction_id)

    def reprice(
        self,
        transaction_id: UUID | str,
        quantity: int | None = None,
        unit_price: Number | None = None,
        tax_rate_percent: Number | None = None,
        items: Iterable[ItemLine] | None = None,
    ) -> TransactionSnapshot:
        """
        Change the pricing basis, recompute amounts and reconcile.

        The new pricing replaces the old one entirely: repricing by items
        clears quantity and unit price, and the reverse drops the items.

        Raises:
            InvalidPricingError.
            TransactionNotFoundError, TransactionVoidedError.
        """
        pricing = _price(quantity, unit_price, tax_rate_percent, items)
        model = self._load_transaction(transaction_id)
        self._require_active(model)

        self._apply_pricing(model, pricing)
        amounts = pricing.amounts
        self.session.flush()

        result = self._apply_reconciliation(model)
        logger.info(
            "transaction_repriced",
            extra={
                "transaction_id": model.id,
                "document_no": model.document_no,
                "total_amount": amounts.total_amount,
                "status": result.status.value,
            },
        )
        return result.transaction

    def reconcile_transaction(self, transaction_id: UUID | str) -> ReconciliationResult:
        """Re-derive status and payment notes and write them back."""
        model = self._load_transaction(transaction_id)
        return self._apply_reconciliation(model)

    def override_status(
        self,
        transaction_id: UUID | str,
        status: PaymentStatus | str,
        actor_id: UUID | None = None,
    ) -> TransactionSnapshot:
        """
        Set the status directly, bypassing reconciliation.

        The value is validated before the transaction is loaded, so a
        rejected override changes nothing.

        Raises:
            InvalidStatusError: not PENDING, PARTIAL or PAID.
            TransactionNotFoundError, TransactionVoidedError.
        """
        new_status = parse_status_override(status)
        model = self._load_transaction(transaction_id)
        self._require_active(model)

        old_status = model.status
        model.status = new_status.value
        self.session.flush()

        logger.warning(
            "payment_status_overridden",
            extra={
                "transaction_id": model.id,
                "document_no": model.document_no,
                "old_status": old_status,
                "new_status": new_status.value,
                "actor_id": actor_id,
            },
        )
        self._publish(
            LedgerEventType.STATUS_OVERRIDDEN,
            model,
            {"old_status": old_status, "new_status": new_status.value, "actor_id": actor_id},
        )
        return TransactionSnapshot.from_model(model)

    def void_transaction(
        self,
        transaction_id: UUID | str,
        reason: str | None = None,
    ) -> TransactionSnapshot:
        """
        Void a transaction and every active payment on it.

        The last derived status is kept for display.

        Raises:
            TransactionNotFoundError.
            TransactionVoidedError: already voided.
        """
        model = self._load_transaction(transaction_id)
        self._require_active(model)

        voided_at = self._clock.now()
        voided_payments = 0
        for payment in model.payments:
            if payment.status == RecordStatus.ACTIVE.value:
                payment.status = RecordStatus.VOIDED.value
                payment.voided_at = voided_at
                payment.void_reason = reason
                voided_payments += 1

        model.record_status = RecordStatus.VOIDED.value
        model.voided_at = voided_at
        model.void_reason = reason
        self.session.flush()

        logger.info(
            "transaction_voided",
            extra={
                "transaction_id": model.id,
                "document_no": model.document_no,
                "voided_payment_count": voided_payments,
                "status": model.status,
                "reason": reason,
            },
        )
        self._publish(
            LedgerEventType.TRANSACTION_VOIDED,
            model,
            {
                "kind": model.kind,
                "reason": reason,
                "status": model.status,
                "voided_payment_count": voided_payments,
            },
        )
        return TransactionSnapshot.from_model(model)

    def delete_transaction(self, transaction_id: UUID | str) -> None:
        """
        Delete a transaction that never received money.

        Its payments are removed with it.

        Raises:
            TransactionNotFoundError.
            TransactionNotDeletableError: voided, or status other than PENDING.
        """
        model = self._load_transaction(transaction_id)
        if model.record_status == RecordStatus.VOIDED.value:
            raise TransactionNotDeletableError(str(model.id), "transaction is voided")
        if model.status != PaymentStatus.PENDING.value:
            raise TransactionNotDeletableError(
                str(model.id), f"status is {model.status}"
            )

        document_no = model.document_no
        self.session.delete(model)
        self.session.flush()
        logger.info(
            "transaction_deleted",
            extra={"transaction_id": transaction_id, "document_no": document_no},
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        transaction_id: UUID | str,
        amount: Number | None,
        payment_date: date | None = None,
        method: str | None = None,
        reference_no: str | None = None,
        actor_id: UUID | None = None,
    ) -> PaymentSnapshot:
        """
        Attach a payment (purchase) or receipt (order) and reconcile.

        ``payment_date`` defaults to the clock's date.  The accounting
        period is the ``YYYYMM`` of the payment date.

        Raises:
            InvalidPaymentAmountError: amount missing, or <= 0 once rounded
                half-up to 2 places.
            TransactionNotFoundError, TransactionVoidedError.
            TransactionFullyPaidError: the transaction is already PAID.
            PaymentDateBeforeTransactionError: paid before the document date.
            OverpaymentError: active payments would exceed the total by
                more than the configured tolerance.
        """
        try:
            value = to_decimal(amount)
        except ValueError as exc:
            raise InvalidPaymentAmountError(amount) from exc
        # Stored at 2 places; validate what will be persisted
        if value is not None:
            value = value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
        if value is None or value <= ZERO:
            raise InvalidPaymentAmountError(amount)

        payment_date = payment_date or self._clock.today()

        model = self._load_transaction(transaction_id)
        self._require_active(model)
        if model.status == PaymentStatus.PAID.value:
            raise TransactionFullyPaidError(str(model.id))
        if payment_date < model.transaction_date:
            raise PaymentDateBeforeTransactionError(payment_date, model.transaction_date)

        paid = sum(
            (p.amount for p in model.payments if p.status == RecordStatus.ACTIVE.value),
            ZERO,
        )
        tolerance = self._settings.overpayment_tolerance
        if paid + value > model.total_amount + tolerance:
            raise OverpaymentError(str(model.id), model.total_amount, paid + value, tolerance)

        record = PaymentRecord(
            line_no=max((p.line_no for p in model.payments), default=0) + 1,
            amount=value,
            payment_date=payment_date,
            accounting_period=format_period(payment_date),
            method=method,
            reference_no=reference_no,
            status=RecordStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        model.payments.append(record)
        self.session.flush()

        result = self._apply_reconciliation(model)

        logger.info(
            "payment_recorded",
            extra={
                "transaction_id": model.id,
                "document_no": model.document_no,
                "payment_id": record.id,
                "amount": value,
                "paid_amount": result.paid_amount,
                "status": result.status.value,
            },
        )
        self._publish(
            LedgerEventType.PAYMENT_RECORDED,
            model,
            {
                "payment_id": record.id,
                "amount": value,
                "paid_amount": result.paid_amount,
                "balance": result.balance,
                "status": result.status.value,
            },
        )
        return PaymentSnapshot.from_model(record)

    def remove_payment(self, payment_id: UUID | str) -> TransactionSnapshot:
        """
        Delete an active payment and reconcile; the status may move down.

        Raises:
            PaymentNotFoundError.
            PaymentVoidedError: voided payments are kept for display.
            TransactionVoidedError.
        """
        record = self._load_payment(payment_id)
        if record.status == RecordStatus.VOIDED.value:
            raise PaymentVoidedError(str(record.id))
        model = self._load_transaction(record.transaction_id)
        self._require_active(model)

        model.payments.remove(record)
        self.session.flush()

        result = self._apply_reconciliation(model)
        logger.info(
            "payment_removed",
            extra={
                "transaction_id": model.id,
                "document_no": model.document_no,
                "payment_id": payment_id,
                "amount": record.amount,
                "status": result.status.value,
            },
        )
        return result.transaction

    def void_payment(
        self,
        payment_id: UUID | str,
        reason: str | None = None,
    ) -> TransactionSnapshot:
        """
        Void one payment and reconcile.  The row stays for display.

        Raises:
            PaymentNotFoundError.
            PaymentVoidedError: already voided.
            TransactionVoidedError.
        """
        record = self._load_payment(payment_id)
        if record.status == RecordStatus.VOIDED.value:
            raise PaymentVoidedError(str(record.id))
        model = self._load_transaction(record.transaction_id)
        self._require_active(model)

        record.status = RecordStatus.VOIDED.value
        record.voided_at = self._clock.now()
        record.void_reason = reason
        self.session.flush()

        result = self._apply_reconciliation(model)
        logger.info(
            "payment_voided",
            extra={
                "transaction_id": model.id,
                "document_no": model.document_no,
                "payment_id": record.id,
                "amount": record.amount,
                "status": result.status.value,
                "reason": reason,
            },
        )
        self._publish(
            LedgerEventType.PAYMENT_VOIDED,
            model,
            {
                "payment_id": record.id,
                "amount": record.amount,
                "reason": reason,
                "status": result.status.value,
            },
        )
        return result.transaction

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_transaction(self, transaction_id: UUID | str) -> LedgerTransaction:
        model = self.session.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.id == as_uuid(transaction_id))
            .with_for_update(of=LedgerTransaction)
        ).unique().scalar_one_or_none()
        if model is None:
            raise TransactionNotFoundError(str(transaction_id))
        return model

    def _load_payment(self, payment_id: UUID | str) -> PaymentRecord:
        record = self.session.get(PaymentRecord, as_uuid(payment_id))
        if record is None:
            raise PaymentNotFoundError(str(payment_id))
        return record

    @staticmethod
    def _apply_pricing(model: LedgerTransaction, pricing: _Pricing) -> None:
        model.quantity = pricing.quantity
        model.unit_price = pricing.unit_price
        model.tax_rate_percent = pricing.tax_rate_percent
        model.tax_amount = pricing.amounts.tax_amount
        model.total_amount = pricing.amounts.total_amount
        model.items = [
            TransactionItem(
                line_no=line_no,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
            )
            for line_no, item in enumerate(pricing.items, start=1)
        ]

    @staticmethod
    def _require_active(model: LedgerTransaction) -> None:
        if model.record_status == RecordStatus.VOIDED.value:
            raise TransactionVoidedError(str(model.id))

    def _apply_reconciliation(self, model: LedgerTransaction) -> ReconciliationResult:
        """Run the reconciliation engine and write status and notes back."""
        result = reconcile(
            TransactionSnapshot.from_model(model),
            notes=self._settings.payment_notes,
        )
        model.status = result.status.value
        if result.note_updates:
            by_id = {str(p.id): p for p in model.payments}
            for update in result.note_updates:
                by_id[str(update.payment_id)].note = update.new_note
        self.session.flush()
        return result

    def _publish(
        self,
        event_type: LedgerEventType,
        model: LedgerTransaction,
        payload: dict[str, Any],
    ) -> None:
        if self._event_bus is None:
            return
        self._event_bus.publish(
            LedgerEvent(
                event_type=event_type,
                transaction_id=model.id,
                occurred_at=self._clock.now(),
                document_no=model.document_no,
                payload=payload,
            )
        )
