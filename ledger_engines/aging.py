"""
Module: ledger_engines.aging
Responsibility:
    Classify the outstanding balances of open purchases (payables) and
    orders (receivables) into 0-30 / 31-60 / 60+ day buckets and aggregate
    them per counterparty.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes TransactionSnapshot values loaded by the selector layer.

Invariants enforced:
    - Purity: no clock access; ``as_of_date`` is always passed in.
    - Only ACTIVE transactions with balance > 0 are aged.
    - For every counterparty the three buckets sum to the balance of its
      open transactions.
    - Boundaries belong to the lower bucket: 30 -> 0-30, 60 -> 31-60.
      Negative ages (not yet due) fall in 0-30.
    - Purchases age from the purchase date, orders from the delivery
      (due) date.  An order without a delivery date ages from its order
      date and a warning is logged.

Failure modes:
    - ValueError for an unknown ``order_by`` key or bucket name.
    - Overpaid transactions (balance < 0) are never aged; build_report()
      lists them separately and logs each one.

Audit relevance:
    Aging summaries drive collection and payment runs.  Each classify()
    invocation is traced via ``@traced_engine``.

Usage:
    from ledger_engines.aging import AgingClassifier

    balances = AgingClassifier().classify(snapshots, as_of_date=date(2025, 3, 1))
    balances[0].aging_31_60
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.dtos import (
    ZERO,
    PaymentStatus,
    TransactionKind,
    TransactionSnapshot,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


class AgingBucket(str, Enum):
    """
    The three aging buckets.

    Contract:
        Every integer age maps to exactly one bucket via ``classify``.
    """

    DAYS_0_30 = "0-30"
    DAYS_31_60 = "31-60"
    DAYS_60_PLUS = "60+"

    @property
    def field_name(self) -> str:
        """Attribute of CounterpartyBalance holding this bucket's amount."""
        return {
            AgingBucket.DAYS_0_30: "aging_0_30",
            AgingBucket.DAYS_31_60: "aging_31_60",
            AgingBucket.DAYS_60_PLUS: "aging_60_plus",
        }[self]

    @classmethod
    def classify(cls, age_days: int) -> AgingBucket:
        if age_days <= 30:
            return cls.DAYS_0_30
        if age_days <= 60:
            return cls.DAYS_31_60
        return cls.DAYS_60_PLUS

    @classmethod
    def parse(cls, value: AgingBucket | str) -> AgingBucket:
        """Accept a member, its value ("31-60") or its field name."""
        if isinstance(value, AgingBucket):
            return value
        for bucket in cls:
            if value in (bucket.value, bucket.field_name, bucket.name):
                return bucket
        raise ValueError(
            f"Unknown aging bucket {value!r}; expected one of "
            f"{', '.join(b.value for b in cls)}"
        )


AGING_BUCKETS: tuple[AgingBucket, ...] = tuple(AgingBucket)


@dataclass(frozen=True)
class AgedTransaction:
    """One open (or overpaid) transaction with its age classification."""

    transaction_id: UUID | str
    kind: TransactionKind
    counterparty_id: UUID | str | None
    counterparty_name: str | None
    document_no: str | None
    reference_date: date | None
    age_days: int
    bucket: AgingBucket
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: PaymentStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": str(self.transaction_id),
            "kind": self.kind.value,
            "counterparty_id": (
                str(self.counterparty_id) if self.counterparty_id is not None else None
            ),
            "counterparty_name": self.counterparty_name,
            "document_no": self.document_no,
            "reference_date": self.reference_date,
            "age_days": self.age_days,
            "bucket": self.bucket.value,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "balance": self.balance,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class CounterpartyBalance:
    """
    Bucketed outstanding balance of one supplier or customer.

    Guarantees:
        - aging_0_30 + aging_31_60 + aging_60_plus == balance.
        - total_amount, paid_amount and balance cover all of the
          counterparty's open transactions.
    """

    counterparty_id: UUID | str | None
    counterparty_name: str | None
    aging_0_30: Decimal = ZERO
    aging_31_60: Decimal = ZERO
    aging_60_plus: Decimal = ZERO
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance: Decimal = ZERO
    transaction_count: int = 0

    def amount_in(self, bucket: AgingBucket | str) -> Decimal:
        return getattr(self, AgingBucket.parse(bucket).field_name)

    def to_dict(self) -> dict[str, Any]:
        """Plain structured data for presentation layers."""
        return {
            "counterparty_id": (
                str(self.counterparty_id) if self.counterparty_id is not None else None
            ),
            "counterparty_name": self.counterparty_name,
            "aging_0_30": self.aging_0_30,
            "aging_31_60": self.aging_31_60,
            "aging_60_plus": self.aging_60_plus,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "balance": self.balance,
            "transaction_count": self.transaction_count,
        }


@dataclass(frozen=True)
class AgingReport:
    """
    Aging summary plus the exceptions found while building it.

    Contract:
        ``balances`` is the classify() output; ``overpaid`` lists ACTIVE
        transactions whose payments exceed their total.
    """

    as_of_date: date
    kind: TransactionKind | None
    balances: tuple[CounterpartyBalance, ...]
    overpaid: tuple[AgedTransaction, ...] = field(default_factory=tuple)

    @property
    def total_balance(self) -> Decimal:
        return sum((b.balance for b in self.balances), ZERO)

    @property
    def total_amount(self) -> Decimal:
        return sum((b.total_amount for b in self.balances), ZERO)

    @property
    def paid_amount(self) -> Decimal:
        return sum((b.paid_amount for b in self.balances), ZERO)

    def total_by_bucket(self) -> dict[AgingBucket, Decimal]:
        return {
            bucket: sum((b.amount_in(bucket) for b in self.balances), ZERO)
            for bucket in AGING_BUCKETS
        }


ORDER_KEYS: tuple[str, ...] = (
    "balance",
    "total_amount",
    "paid_amount",
    "aging_0_30",
    "aging_31_60",
    "aging_60_plus",
    "counterparty_name",
)


def aging_reference_date(transaction: TransactionSnapshot) -> date | None:
    """
    Date a transaction ages from.

    Purchases age from the purchase date.  Orders age from the delivery
    date; when it is missing the order date is used and a warning logged.
    """
    reference = transaction.aging_reference_date
    if reference is None and transaction.kind == TransactionKind.ORDER:
        logger.warning(
            "aging_delivery_date_missing",
            extra={
                "transaction_id": transaction.transaction_id,
                "document_no": transaction.document_no,
            },
        )
        reference = transaction.transaction_date
    return reference


def age_transaction(
    transaction: TransactionSnapshot,
    as_of_date: date,
) -> AgedTransaction:
    """Age one transaction as of ``as_of_date``."""
    reference = aging_reference_date(transaction)
    if reference is None:
        logger.warning(
            "aging_reference_date_missing",
            extra={
                "transaction_id": transaction.transaction_id,
                "document_no": transaction.document_no,
            },
        )
        age_days = 0
    else:
        age_days = (as_of_date - reference).days

    return AgedTransaction(
        transaction_id=transaction.transaction_id,
        kind=transaction.kind,
        counterparty_id=transaction.counterparty_id,
        counterparty_name=transaction.counterparty_name,
        document_no=transaction.document_no,
        reference_date=reference,
        age_days=age_days,
        bucket=AgingBucket.classify(age_days),
        total_amount=transaction.total,
        paid_amount=transaction.paid_amount,
        balance=transaction.balance,
        status=transaction.status,
    )


def _is_open(transaction: TransactionSnapshot) -> bool:
    return not transaction.is_voided and transaction.balance > ZERO


def _sort_balances(
    balances: list[CounterpartyBalance],
    order_by: str,
    descending: bool,
) -> list[CounterpartyBalance]:
    # Tie order: name, then id.  Python's sort is stable under reverse=True.
    ordered = sorted(
        balances,
        key=lambda b: ((b.counterparty_name or "").casefold(), str(b.counterparty_id)),
    )
    if order_by == "counterparty_name":
        return sorted(
            ordered,
            key=lambda b: (b.counterparty_name or "").casefold(),
            reverse=descending,
        )
    return sorted(ordered, key=lambda b: getattr(b, order_by), reverse=descending)


def filter_balances(
    balances: Iterable[CounterpartyBalance],
    name_contains: str | None = None,
    bucket: AgingBucket | str | None = None,
) -> list[CounterpartyBalance]:
    """
    Narrow an aging summary.

    Args:
        name_contains: Case-insensitive substring of the counterparty name.
        bucket: Keep only counterparties with a positive amount in it.
    """
    wanted = AgingBucket.parse(bucket) if bucket is not None else None
    needle = name_contains.casefold() if name_contains else None
    result = []
    for balance in balances:
        if needle and needle not in (balance.counterparty_name or "").casefold():
            continue
        if wanted is not None and balance.amount_in(wanted) <= ZERO:
            continue
        result.append(balance)
    return result


class AgingClassifier:
    """
    Aggregate open transactions into per-counterparty aging balances.

    Contract:
        Pure functions -- no I/O, no database access, no clock.
    Guarantees:
        - Same inputs, same output (including order).
        - Safe to run in parallel over disjoint counterparty subsets.
    Non-goals:
        - Does not load or persist anything; see AgingReportService.
    """

    @traced_engine("aging", "1.0", fingerprint_fields=("as_of_date", "order_by"))
    def classify(
        self,
        open_transactions: Iterable[TransactionSnapshot],
        as_of_date: date,
        order_by: str = "balance",
        descending: bool = True,
    ) -> list[CounterpartyBalance]:
        """
        Bucket balances per counterparty.

        Preconditions:
            ``order_by`` is one of ORDER_KEYS.

        Postconditions:
            - VOIDED transactions and those with balance <= 0 contribute
              nothing.
            - Default order is balance descending, ties by counterparty name
              then id.

        Raises:
            ValueError: unknown ``order_by``.
        """
        if order_by not in ORDER_KEYS:
            raise ValueError(
                f"Unknown order key {order_by!r}; expected one of {', '.join(ORDER_KEYS)}"
            )

        accumulators: dict[str, dict[str, Any]] = {}
        skipped = 0
        for transaction in open_transactions:
            if not _is_open(transaction):
                skipped += 1
                continue

            aged = age_transaction(transaction, as_of_date)
            key = str(transaction.counterparty_id)
            acc = accumulators.get(key)
            if acc is None:
                acc = {
                    "counterparty_id": transaction.counterparty_id,
                    "counterparty_name": transaction.counterparty_name,
                    "aging_0_30": ZERO,
                    "aging_31_60": ZERO,
                    "aging_60_plus": ZERO,
                    "total_amount": ZERO,
                    "paid_amount": ZERO,
                    "balance": ZERO,
                    "transaction_count": 0,
                }
                accumulators[key] = acc
            elif acc["counterparty_name"] is None:
                acc["counterparty_name"] = transaction.counterparty_name

            acc[aged.bucket.field_name] += aged.balance
            acc["total_amount"] += aged.total_amount
            acc["paid_amount"] += aged.paid_amount
            acc["balance"] += aged.balance
            acc["transaction_count"] += 1

        balances = [CounterpartyBalance(**acc) for acc in accumulators.values()]

        logger.debug(
            "aging_classified",
            extra={
                "as_of_date": as_of_date,
                "counterparty_count": len(balances),
                "skipped_count": skipped,
                "order_by": order_by,
            },
        )
        return _sort_balances(balances, order_by, descending)

    def detail_for_counterparty(
        self,
        transactions: Iterable[TransactionSnapshot],
        counterparty_id: UUID | str,
        as_of_date: date,
    ) -> list[AgedTransaction]:
        """
        Open transactions of one counterparty, newest reference date first.
        """
        wanted = str(counterparty_id)
        aged = [
            age_transaction(t, as_of_date)
            for t in transactions
            if str(t.counterparty_id) == wanted and _is_open(t)
        ]
        aged.sort(key=lambda a: (a.reference_date or date.min, a.document_no or ""),
                  reverse=True)
        return aged

    def build_report(
        self,
        transactions: Sequence[TransactionSnapshot],
        as_of_date: date,
        kind: TransactionKind | None = None,
        order_by: str = "balance",
        descending: bool = True,
    ) -> AgingReport:
        """Summary balances plus the overpaid transactions found."""
        overpaid = []
        for transaction in transactions:
            if transaction.is_voided or transaction.balance >= ZERO:
                continue
            item = age_transaction(transaction, as_of_date)
            logger.warning(
                "aging_overpaid_transaction",
                extra={
                    "transaction_id": item.transaction_id,
                    "document_no": item.document_no,
                    "counterparty_id": item.counterparty_id,
                    "balance": item.balance,
                },
            )
            overpaid.append(item)

        balances = self.classify(
            transactions,
            as_of_date=as_of_date,
            order_by=order_by,
            descending=descending,
        )
        return AgingReport(
            as_of_date=as_of_date,
            kind=kind,
            balances=tuple(balances),
            overpaid=tuple(overpaid),
        )
