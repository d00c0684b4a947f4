"""
Tests for the payment reconciliation engine.

Covers:
- derive_status thresholds and None handling
- reconcile(): status, notes, note updates, overpayment flag
- Voided payments excluded from the paid amount but still annotated
- Idempotence and purity (input snapshot untouched)
- Status moving down after a payment disappears
- parse_status_override validation
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.reconciliation import (
    DEFAULT_PAYMENT_NOTES,
    derive_status,
    parse_status_override,
    reconcile,
)
from ledger_kernel.domain.dtos import (
    PaymentSnapshot,
    PaymentStatus,
    RecordStatus,
    TransactionKind,
    TransactionSnapshot,
)
from ledger_kernel.exceptions import InvalidStatusError


def _payment(amount, status=RecordStatus.ACTIVE, note=None) -> PaymentSnapshot:
    return PaymentSnapshot(
        payment_id=uuid4(),
        amount=Decimal(amount) if amount is not None else None,
        payment_date=date(2025, 1, 20),
        status=status,
        note=note,
    )


def _transaction(total="1000", payments=(), status=PaymentStatus.PENDING) -> TransactionSnapshot:
    return TransactionSnapshot(
        transaction_id=uuid4(),
        kind=TransactionKind.PURCHASE,
        counterparty_id=uuid4(),
        transaction_date=date(2025, 1, 15),
        total_amount=Decimal(total) if total is not None else None,
        document_no="PO-202501-0001",
        status=status,
        payments=tuple(payments),
    )


class TestDeriveStatus:
    """Tests for derive_status."""

    @pytest.mark.parametrize(
        "total, paid, expected",
        [
            ("1000", "0", PaymentStatus.PENDING),
            ("1000", "0.01", PaymentStatus.PARTIAL),
            ("1000", "400", PaymentStatus.PARTIAL),
            ("1000", "999.99", PaymentStatus.PARTIAL),
            ("1000", "1000", PaymentStatus.PAID),
            ("1000", "1000.01", PaymentStatus.PAID),
            ("0", "0", PaymentStatus.PENDING),
        ],
    )
    def test_thresholds(self, total, paid, expected):
        assert derive_status(Decimal(total), Decimal(paid)) == expected

    def test_none_counts_as_zero(self):
        assert derive_status(None, None) == PaymentStatus.PENDING
        assert derive_status(None, Decimal("5")) == PaymentStatus.PAID


class TestReconcile:
    """Tests for reconcile."""

    def test_no_payments_is_pending(self):
        result = reconcile(_transaction())

        assert result.status == PaymentStatus.PENDING
        assert result.paid_amount == Decimal("0")
        assert result.balance == Decimal("1000")
        assert result.note_updates == ()

    def test_partial_payment(self):
        result = reconcile(_transaction(payments=[_payment("400")]))

        assert result.status == PaymentStatus.PARTIAL
        assert result.balance == Decimal("600")
        assert result.transaction.payments[0].note == "Partially paid"

    def test_full_payment(self):
        result = reconcile(_transaction(payments=[_payment("600"), _payment("400")]))

        assert result.status == PaymentStatus.PAID
        assert all(p.note == "Paid in full" for p in result.transaction.payments)
        assert len(result.note_updates) == 2
        assert not result.is_overpaid

    def test_overpayment_flagged_not_clamped(self):
        result = reconcile(_transaction(payments=[_payment("1000.50")]))

        assert result.status == PaymentStatus.PAID
        assert result.balance == Decimal("-0.50")
        assert result.is_overpaid

    def test_missing_total_and_amounts_never_raise(self):
        result = reconcile(_transaction(total=None, payments=[_payment(None)]))

        assert result.status == PaymentStatus.PENDING
        assert result.paid_amount == Decimal("0")

    def test_voided_payments_do_not_count_but_get_notes(self):
        txn = _transaction(payments=[
            _payment("400"),
            _payment("600", status=RecordStatus.VOIDED),
        ])

        result = reconcile(txn)

        assert result.status == PaymentStatus.PARTIAL
        assert result.paid_amount == Decimal("400")
        assert [p.note for p in result.transaction.payments] == [
            "Partially paid",
            "Partially paid",
        ]

    def test_note_updates_record_old_and_new(self):
        payment = _payment("400", note="Awaiting payment")

        result = reconcile(_transaction(payments=[payment]))

        (update,) = result.note_updates
        assert update.payment_id == payment.payment_id
        assert update.old_note == "Awaiting payment"
        assert update.new_note == "Partially paid"

    def test_idempotent(self):
        first = reconcile(_transaction(payments=[_payment("250"), _payment("250")]))
        second = reconcile(first.transaction)

        assert second.transaction == first.transaction
        assert second.note_updates == ()
        assert not second.changed

    def test_input_snapshot_not_mutated(self):
        txn = _transaction(payments=[_payment("400")])

        reconcile(txn)

        assert txn.status == PaymentStatus.PENDING
        assert txn.payments[0].note is None

    def test_status_moves_down_when_payment_removed(self):
        paid = reconcile(_transaction(payments=[_payment("1000")])).transaction
        assert paid.status == PaymentStatus.PAID

        without_payment = replace(paid, payments=())
        result = reconcile(without_payment)

        assert result.status == PaymentStatus.PENDING

    def test_custom_notes(self):
        notes = {PaymentStatus.PARTIAL: "Part-paid"}

        result = reconcile(_transaction(payments=[_payment("1")]), notes=notes)

        assert result.transaction.payments[0].note == "Part-paid"

    def test_default_notes_cover_every_status(self):
        assert set(DEFAULT_PAYMENT_NOTES) == set(PaymentStatus)

    def test_emits_engine_trace(self, captured_logs):
        reconcile(_transaction(payments=[_payment("400")]))

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "reconciliation"
        assert len(traces[-1]["input_fingerprint"]) == 16


class TestParseStatusOverride:
    """Tests for explicit status override validation."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("PAID", PaymentStatus.PAID),
            ("partial", PaymentStatus.PARTIAL),
            ("  Pending ", PaymentStatus.PENDING),
            (PaymentStatus.PAID, PaymentStatus.PAID),
        ],
    )
    def test_accepts_known_values(self, value, expected):
        assert parse_status_override(value) == expected

    @pytest.mark.parametrize("value", ["settled", "", "VOID", None, 3])
    def test_rejects_unknown_values(self, value):
        with pytest.raises(InvalidStatusError) as exc_info:
            parse_status_override(value)

        assert exc_info.value.code == "INVALID_STATUS"
        assert exc_info.value.allowed == ("PENDING", "PARTIAL", "PAID")
