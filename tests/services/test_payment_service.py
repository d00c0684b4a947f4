"""
Tests for PaymentService.

Covers:
- Creating purchases/orders: pricing, numbering, initial status
- Recording payments: status, notes, accounting period, events
- Rejections: amount, date, fully paid, overpayment tolerance, voided
- Removing and voiding payments (status moves down)
- Voiding transactions, status override, repricing, deletion
- Item-line pricing and validation of stored pricing scales
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from ledger_engines.amounts import compute_amounts
from ledger_kernel.domain.dtos import ItemLine, PaymentStatus, RecordStatus, TransactionKind
from ledger_kernel.domain.events import LedgerEventType
from ledger_kernel.exceptions import (
    CounterpartyNotFoundError,
    InvalidPaymentAmountError,
    InvalidPricingError,
    InvalidStatusError,
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
from ledger_kernel.models.transaction import LedgerTransaction, PaymentRecord, TransactionItem

PURCHASE_DATE = date(2025, 1, 15)


@pytest.fixture
def purchase(payment_service, supplier):
    """A 1050.00 purchase (10 x 100 at 5%)."""
    return payment_service.create_transaction(
        TransactionKind.PURCHASE,
        supplier.id,
        PURCHASE_DATE,
        quantity=10,
        unit_price="100",
        tax_rate_percent="5",
    )


class TestCreateTransaction:
    """Tests for create_transaction."""

    def test_purchase_is_priced_numbered_and_pending(self, purchase, supplier):
        assert purchase.document_no == "PO-202501-0001"
        assert purchase.kind == TransactionKind.PURCHASE
        assert purchase.tax_amount == Decimal("50")
        assert purchase.total_amount == Decimal("1050.00")
        assert purchase.status == PaymentStatus.PENDING
        assert purchase.counterparty_name == supplier.name

    def test_order_uses_so_prefix(self, payment_service, customer):
        order = payment_service.create_transaction(
            "ORDER", customer.id, date(2025, 2, 3),
            quantity=1, unit_price="10", due_date=date(2025, 2, 10),
        )

        assert order.document_no == "SO-202502-0001"
        assert order.due_date == date(2025, 2, 10)

    def test_numbers_increase_within_month(self, payment_service, supplier, purchase):
        second = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, date(2025, 1, 20), quantity=1, unit_price="1",
        )

        assert second.document_no == "PO-202501-0002"

    def test_missing_pricing_gives_zero_amounts(self, payment_service, supplier):
        txn = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE, quantity=None, unit_price="10",
        )

        assert txn.total_amount == Decimal("0")
        assert txn.tax_amount == Decimal("0")

    def test_missing_date_rejected_before_numbering(self, payment_service, supplier, counter_store):
        with pytest.raises(MissingReferenceDateError):
            payment_service.create_transaction(TransactionKind.PURCHASE, supplier.id, None)

        assert counter_store.current_value("PO-202501") is None

    def test_unknown_counterparty(self, payment_service):
        with pytest.raises(CounterpartyNotFoundError):
            payment_service.create_transaction(TransactionKind.PURCHASE, uuid4(), PURCHASE_DATE)

    def test_actor_recorded(self, session, payment_service, supplier, test_actor_id):
        txn = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE, actor_id=test_actor_id,
        )

        model = session.get(LedgerTransaction, txn.transaction_id)
        assert model.created_by_id == test_actor_id


class TestRecordPayment:
    """Tests for record_payment."""

    def test_partial_payment(self, payment_service, purchase):
        payment = payment_service.record_payment(
            purchase.transaction_id, "400", date(2025, 1, 20), method="BANK",
        )

        txn = payment_service.get_transaction(purchase.transaction_id)
        assert txn.status == PaymentStatus.PARTIAL
        assert txn.paid_amount == Decimal("400")
        assert txn.balance == Decimal("650")
        assert payment.note == "Partially paid"

    def test_full_payment_updates_all_notes(self, payment_service, purchase):
        payment_service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))
        payment_service.record_payment(purchase.transaction_id, "650", date(2025, 1, 25))

        txn = payment_service.get_transaction(purchase.transaction_id)
        assert txn.status == PaymentStatus.PAID
        assert [p.note for p in txn.payments] == ["Paid in full", "Paid in full"]

    def test_amount_rounded_to_cents_before_storing(self, session, payment_service, purchase):
        payment = payment_service.record_payment(
            purchase.transaction_id, "400.005", date(2025, 1, 20),
        )
        assert payment.amount == Decimal("400.01")

        session.expire_all()
        txn = payment_service.get_transaction(purchase.transaction_id)
        assert txn.payments[0].amount == Decimal("400.01")
        assert txn.paid_amount == Decimal("400.01")
        assert txn.status == PaymentStatus.PARTIAL

    @pytest.mark.parametrize("amount", ["0.004", "0.0049", Decimal("0.001")])
    def test_sub_cent_amount_rejected(self, session, payment_service, purchase, amount):
        with pytest.raises(InvalidPaymentAmountError):
            payment_service.record_payment(purchase.transaction_id, amount, date(2025, 1, 20))

        session.expire_all()
        txn = payment_service.get_transaction(purchase.transaction_id)
        assert txn.payments == ()
        assert txn.status == PaymentStatus.PENDING

    def test_tolerance_applies_to_rounded_amount(self, payment_service, purchase):
        # 1050.014 is stored as 1050.01, inside the 0.01 tolerance
        payment_service.record_payment(purchase.transaction_id, "1050.014", date(2025, 1, 20))

        assert payment_service.get_transaction(purchase.transaction_id).status == PaymentStatus.PAID

    def test_accounting_period_from_payment_date(self, session, payment_service, purchase):
        payment = payment_service.record_payment(
            purchase.transaction_id, "100", date(2025, 2, 3),
        )

        record = session.get(PaymentRecord, payment.payment_id)
        assert record.accounting_period == "202502"
        assert record.line_no == 1

    def test_payment_date_defaults_to_clock(self, payment_service, purchase, deterministic_clock):
        payment = payment_service.record_payment(purchase.transaction_id, "100")

        assert payment.payment_date == deterministic_clock.today()

    def test_publishes_event(self, payment_service, purchase, event_bus):
        payment = payment_service.record_payment(
            purchase.transaction_id, "400", date(2025, 1, 20),
        )

        (event,) = event_bus.pending
        assert event.event_type == LedgerEventType.PAYMENT_RECORDED
        assert event.document_no == "PO-202501-0001"
        assert event.payload["payment_id"] == payment.payment_id
        assert event.payload["status"] == "PARTIAL"

    @pytest.mark.parametrize("amount", [None, "0", "-5", "abc"])
    def test_invalid_amount(self, payment_service, purchase, amount):
        with pytest.raises(InvalidPaymentAmountError):
            payment_service.record_payment(purchase.transaction_id, amount, date(2025, 1, 20))

    def test_payment_before_purchase_date(self, payment_service, purchase):
        with pytest.raises(PaymentDateBeforeTransactionError):
            payment_service.record_payment(purchase.transaction_id, "10", date(2025, 1, 14))

    def test_fully_paid_rejects_more(self, payment_service, purchase):
        payment_service.record_payment(purchase.transaction_id, "1050", date(2025, 1, 20))

        with pytest.raises(TransactionFullyPaidError):
            payment_service.record_payment(purchase.transaction_id, "1", date(2025, 1, 21))

    def test_overpayment_within_tolerance(self, payment_service, purchase):
        payment_service.record_payment(purchase.transaction_id, "1050.01", date(2025, 1, 20))

        txn = payment_service.get_transaction(purchase.transaction_id)
        assert txn.status == PaymentStatus.PAID
        assert txn.balance == Decimal("-0.01")

    def test_overpayment_beyond_tolerance(self, payment_service, purchase, event_bus):
        payment_service.record_payment(purchase.transaction_id, "1000", date(2025, 1, 20))

        with pytest.raises(OverpaymentError) as exc_info:
            payment_service.record_payment(purchase.transaction_id, "50.02", date(2025, 1, 21))

        assert exc_info.value.paid_amount == Decimal("1050.02")
        assert len(event_bus.pending) == 1

    def test_unknown_transaction(self, payment_service):
        with pytest.raises(TransactionNotFoundError):
            payment_service.record_payment(uuid4(), "10", date(2025, 1, 20))

    def test_logs_payment(self, payment_service, purchase, captured_logs):
        payment_service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))

        records = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert records
        assert records[0]["status"] == "PARTIAL"
        assert records[0]["amount"] == "400"


class TestRemoveAndVoidPayment:
    """Tests for remove_payment and void_payment."""

    def test_remove_moves_status_down(self, session, payment_service, purchase):
        first = payment_service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))
        second = payment_service.record_payment(purchase.transaction_id, "650", date(2025, 1, 21))

        txn = payment_service.remove_payment(second.payment_id)

        assert txn.status == PaymentStatus.PARTIAL
        assert [p.payment_id for p in txn.payments] == [first.payment_id]
        assert txn.payments[0].note == "Partially paid"
        assert session.get(PaymentRecord, second.payment_id) is None

    def test_remove_last_payment_returns_to_pending(self, payment_service, purchase):
        payment = payment_service.record_payment(purchase.transaction_id, "1050", date(2025, 1, 20))

        txn = payment_service.remove_payment(payment.payment_id)

        assert txn.status == PaymentStatus.PENDING
        assert txn.payments == ()

    def test_void_keeps_row_and_recomputes(self, payment_service, purchase, event_bus):
        kept = payment_service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))
        voided = payment_service.record_payment(purchase.transaction_id, "650", date(2025, 1, 21))

        txn = payment_service.void_payment(voided.payment_id, reason="bounced")

        assert txn.status == PaymentStatus.PARTIAL
        assert txn.paid_amount == Decimal("400")
        statuses = {p.payment_id: p.status for p in txn.payments}
        assert statuses == {kept.payment_id: RecordStatus.ACTIVE, voided.payment_id: RecordStatus.VOIDED}
        assert all(p.note == "Partially paid" for p in txn.payments)
        assert event_bus.pending[-1].event_type == LedgerEventType.PAYMENT_VOIDED
        assert event_bus.pending[-1].payload["reason"] == "bounced"

    def test_void_twice_rejected(self, payment_service, purchase):
        payment = payment_service.record_payment(purchase.transaction_id, "10", date(2025, 1, 20))
        payment_service.void_payment(payment.payment_id)

        with pytest.raises(PaymentVoidedError):
            payment_service.void_payment(payment.payment_id)
        with pytest.raises(PaymentVoidedError):
            payment_service.remove_payment(payment.payment_id)

    def test_unknown_payment(self, payment_service):
        with pytest.raises(PaymentNotFoundError):
            payment_service.void_payment(uuid4())


class TestVoidTransaction:
    """Tests for void_transaction."""

    def test_voids_payments_and_keeps_status(self, payment_service, purchase, event_bus, deterministic_clock):
        payment_service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))

        txn = payment_service.void_transaction(purchase.transaction_id, reason="duplicate")

        assert txn.is_voided
        assert txn.status == PaymentStatus.PARTIAL
        assert txn.paid_amount == Decimal("0")
        assert all(p.status == RecordStatus.VOIDED for p in txn.payments)
        event = event_bus.pending[-1]
        assert event.event_type == LedgerEventType.TRANSACTION_VOIDED
        assert event.payload["voided_payment_count"] == 1
        assert event.occurred_at == deterministic_clock.now()

    def test_voided_transaction_is_frozen(self, payment_service, purchase):
        payment_service.void_transaction(purchase.transaction_id)

        with pytest.raises(TransactionVoidedError):
            payment_service.void_transaction(purchase.transaction_id)
        with pytest.raises(TransactionVoidedError):
            payment_service.record_payment(purchase.transaction_id, "10", date(2025, 1, 20))
        with pytest.raises(TransactionVoidedError):
            payment_service.override_status(purchase.transaction_id, "PAID")


class TestOverrideStatus:
    """Tests for override_status."""

    def test_override(self, payment_service, purchase, event_bus, test_actor_id):
        txn = payment_service.override_status(purchase.transaction_id, "paid", actor_id=test_actor_id)

        assert txn.status == PaymentStatus.PAID
        event = event_bus.pending[-1]
        assert event.event_type == LedgerEventType.STATUS_OVERRIDDEN
        assert event.payload["old_status"] == "PENDING"
        assert event.payload["new_status"] == "PAID"

    def test_invalid_override_changes_nothing(self, payment_service, purchase, event_bus):
        with pytest.raises(InvalidStatusError):
            payment_service.override_status(purchase.transaction_id, "settled")

        assert payment_service.get_transaction(purchase.transaction_id).status == PaymentStatus.PENDING
        assert event_bus.pending == ()

    def test_reconcile_restores_derived_status(self, payment_service, purchase):
        payment_service.override_status(purchase.transaction_id, "PAID")

        result = payment_service.reconcile_transaction(purchase.transaction_id)

        assert result.status == PaymentStatus.PENDING


class TestRepriceAndDelete:
    """Tests for reprice and delete_transaction."""

    def test_reprice_recomputes_amounts_and_status(self, payment_service, purchase):
        payment_service.record_payment(purchase.transaction_id, "400", date(2025, 1, 20))

        txn = payment_service.reprice(purchase.transaction_id, 4, "100", 0)

        assert txn.total_amount == Decimal("400.00")
        assert txn.status == PaymentStatus.PAID
        assert txn.payments[0].note == "Paid in full"

    def test_delete_pending_transaction(self, session, payment_service, purchase):
        payment_service.delete_transaction(purchase.transaction_id)

        assert session.get(LedgerTransaction, purchase.transaction_id) is None

    def test_delete_rejected_once_paid(self, payment_service, purchase):
        payment_service.record_payment(purchase.transaction_id, "10", date(2025, 1, 20))

        with pytest.raises(TransactionNotDeletableError) as exc_info:
            payment_service.delete_transaction(purchase.transaction_id)

        assert "PARTIAL" in exc_info.value.reason

    def test_delete_removes_voided_payments(self, session, payment_service, purchase):
        payment = payment_service.record_payment(purchase.transaction_id, "10", date(2025, 1, 20))
        payment_service.void_payment(payment.payment_id)

        payment_service.delete_transaction(purchase.transaction_id)

        remaining = session.execute(
            select(PaymentRecord).where(PaymentRecord.transaction_id == purchase.transaction_id)
        ).scalars().all()
        assert remaining == []

    def test_delete_voided_rejected(self, payment_service, purchase):
        payment_service.void_transaction(purchase.transaction_id)

        with pytest.raises(TransactionNotDeletableError):
            payment_service.delete_transaction(purchase.transaction_id)


class TestItemLines:
    """Tests for transactions priced by item lines."""

    ITEMS = [ItemLine("Hex bolts", 3, "3.335"), ItemLine("Lock nuts", 2, "10")]

    def test_lines_subtotalled_and_summed(self, session, payment_service, supplier):
        txn = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE,
            tax_rate_percent=5, items=self.ITEMS,
        )

        # 10.005 + 0.5003 tax -> 10.51; 20 + 1 tax -> 21.00
        assert txn.tax_amount == Decimal("1.5003")
        assert txn.total_amount == Decimal("31.51")
        assert [i.subtotal for i in txn.items] == [Decimal("10.01"), Decimal("20.00")]

        model = session.get(LedgerTransaction, txn.transaction_id)
        assert model.quantity is None
        assert model.unit_price is None
        assert [i.line_no for i in model.items] == [1, 2]

    def test_lines_reload_in_order(self, session, payment_service, supplier):
        txn = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE, items=self.ITEMS,
        )

        session.expire_all()
        reloaded = payment_service.get_transaction(txn.transaction_id)

        assert [i.description for i in reloaded.items] == ["Hex bolts", "Lock nuts"]
        assert reloaded.items[0].unit_price == Decimal("3.335")
        assert reloaded.total_amount == Decimal("30.01")

    def test_both_pricing_forms_rejected_before_numbering(
        self, payment_service, supplier, counter_store,
    ):
        with pytest.raises(InvalidPricingError) as exc_info:
            payment_service.create_transaction(
                TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE,
                quantity=1, unit_price="5", items=self.ITEMS,
            )

        assert exc_info.value.field == "items"
        assert counter_store.current_value("PO-202501") is None

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [ItemLine("  ", 1, "5")],
            [ItemLine("Washers", 1, "-5")],
            [ItemLine("Washers", None, "5")],
        ],
    )
    def test_invalid_lines_rejected(self, payment_service, supplier, items):
        with pytest.raises(InvalidPricingError):
            payment_service.create_transaction(
                TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE, items=items,
            )

    def test_reprice_switches_between_forms(self, session, payment_service, purchase):
        txn = payment_service.reprice(
            purchase.transaction_id, items=[ItemLine("Installation", 1, "200")],
        )
        assert txn.total_amount == Decimal("200.00")
        assert len(txn.items) == 1

        txn = payment_service.reprice(purchase.transaction_id, 2, "50", None)

        assert txn.total_amount == Decimal("100.00")
        assert txn.items == ()
        remaining = session.execute(
            select(TransactionItem).where(TransactionItem.transaction_id == purchase.transaction_id)
        ).scalars().all()
        assert remaining == []

    def test_delete_removes_lines(self, session, payment_service, supplier):
        txn = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE, items=self.ITEMS,
        )

        payment_service.delete_transaction(txn.transaction_id)

        assert session.execute(select(TransactionItem)).scalars().all() == []


class TestPricingValidation:
    """Pricing inputs must fit the columns that store them."""

    @pytest.mark.parametrize(
        "pricing, field",
        [
            ({"quantity": -2, "unit_price": "100"}, "quantity"),
            ({"quantity": "2.5", "unit_price": "100"}, "quantity"),
            ({"quantity": 1, "unit_price": "-1"}, "unit_price"),
            ({"quantity": 1, "unit_price": "1.00005"}, "unit_price"),
            ({"quantity": 1, "unit_price": "1", "tax_rate_percent": "NaN"}, "tax_rate_percent"),
            ({"quantity": 1, "unit_price": "1", "tax_rate_percent": "5.00001"}, "tax_rate_percent"),
        ],
    )
    def test_rejected_before_numbering(
        self, payment_service, supplier, counter_store, pricing, field,
    ):
        with pytest.raises(InvalidPricingError) as exc_info:
            payment_service.create_transaction(
                TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE, **pricing,
            )

        assert exc_info.value.field == field
        assert exc_info.value.code == "INVALID_PRICING"
        assert counter_store.current_value("PO-202501") is None

    def test_stored_pricing_reproduces_amounts(self, session, payment_service, supplier):
        txn = payment_service.create_transaction(
            TransactionKind.PURCHASE, supplier.id, PURCHASE_DATE,
            quantity=3, unit_price="1.2345", tax_rate_percent="7.125",
        )

        session.expire_all()
        model = session.get(LedgerTransaction, txn.transaction_id)

        assert model.unit_price == Decimal("1.2345")
        assert compute_amounts(model.quantity, model.unit_price, model.tax_rate_percent) == (
            model.tax_amount, model.total_amount,
        )

    def test_rejected_reprice_leaves_transaction_unchanged(self, payment_service, purchase):
        with pytest.raises(InvalidPricingError):
            payment_service.reprice(purchase.transaction_id, -1, "100", 5)

        txn = payment_service.get_transaction(purchase.transaction_id)
        assert txn.total_amount == Decimal("1050.00")
