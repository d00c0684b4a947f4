"""
AgingReportService -- payables and receivables aging over stored data.

Responsibility:
    Loads open purchases or orders through TransactionSelector, runs the
    AgingClassifier over them and returns filtered, paged summaries,
    per-counterparty detail, and full reports.

Architecture position:
    Services -- read-only orchestration over the aging engine.

Invariants enforced:
    - Read-only: never adds, flushes or commits.
    - ``as_of_date`` defaults to the injected clock's date; the engine never
      reads a clock.
    - Payables age from the purchase date, receivables from the delivery
      date.

Failure modes:
    - ValueError for a bad page/size, order key or bucket name.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_engines.aging import (
    AgedTransaction,
    AgingBucket,
    AgingClassifier,
    AgingReport,
    CounterpartyBalance,
    filter_balances,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import TransactionKind
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.aging")


@dataclass(frozen=True)
class AgingFilter:
    """Narrowing criteria for an aging summary."""

    counterparty_name: str | None = None
    bucket: AgingBucket | str | None = None


@dataclass(frozen=True)
class AgingPage:
    """One page of an aging summary.  ``page`` is zero-based."""

    items: tuple[CounterpartyBalance, ...]
    page: int
    size: int | None
    total: int

    @property
    def pages(self) -> int:
        if not self.size:
            return 1 if self.total else 0
        return -(-self.total // self.size)


class AgingReportService(BaseService):
    """
    Aging summaries for suppliers (payables) and customers (receivables).

    Usage:
        service = AgingReportService(session, clock)
        page = service.payables(filters=AgingFilter(bucket="60+"), size=20)
        for balance in page.items:
            print(balance.counterparty_name, balance.aging_60_plus)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        classifier: AgingClassifier | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._classifier = classifier or AgingClassifier()
        self._selector = TransactionSelector(session)

    def payables(
        self,
        as_of_date: date | None = None,
        filters: AgingFilter | None = None,
        page: int = 0,
        size: int | None = None,
        order_by: str = "balance",
        descending: bool = True,
    ) -> AgingPage:
        """Supplier balances from open purchases."""
        return self.summary(
            TransactionKind.PURCHASE, as_of_date, filters, page, size, order_by, descending
        )

    def receivables(
        self,
        as_of_date: date | None = None,
        filters: AgingFilter | None = None,
        page: int = 0,
        size: int | None = None,
        order_by: str = "balance",
        descending: bool = True,
    ) -> AgingPage:
        """Customer balances from open orders."""
        return self.summary(
            TransactionKind.ORDER, as_of_date, filters, page, size, order_by, descending
        )

    def summary(
        self,
        kind: TransactionKind,
        as_of_date: date | None = None,
        filters: AgingFilter | None = None,
        page: int = 0,
        size: int | None = None,
        order_by: str = "balance",
        descending: bool = True,
    ) -> AgingPage:
        """
        Classify, filter and page the open transactions of ``kind``.

        Raises:
            ValueError: page < 0, size < 1, unknown order key or bucket.
        """
        if page < 0:
            raise ValueError("page cannot be negative")
        if size is not None and size < 1:
            raise ValueError("size must be at least 1")

        filters = filters or AgingFilter()
        as_of = as_of_date or self._clock.today()

        snapshots = self._selector.open_snapshots(
            kind, counterparty_name=filters.counterparty_name
        )
        balances = self._classifier.classify(
            snapshots, as_of_date=as_of, order_by=order_by, descending=descending
        )
        balances = filter_balances(
            balances,
            name_contains=filters.counterparty_name,
            bucket=filters.bucket,
        )

        total = len(balances)
        if size is not None:
            start = page * size
            balances = balances[start:start + size]

        logger.info(
            "aging_summary_built",
            extra={
                "kind": TransactionKind(kind).value,
                "as_of_date": as_of,
                "counterparty_count": total,
                "page": page,
                "size": size,
            },
        )
        return AgingPage(items=tuple(balances), page=page, size=size, total=total)

    def counterparty_detail(
        self,
        kind: TransactionKind,
        counterparty_id: UUID | str,
        as_of_date: date | None = None,
    ) -> list[AgedTransaction]:
        """Open transactions of one supplier or customer, newest first."""
        as_of = as_of_date or self._clock.today()
        snapshots = self._selector.open_snapshots(kind, counterparty_id=counterparty_id)
        return self._classifier.detail_for_counterparty(
            snapshots, counterparty_id, as_of
        )

    def report(
        self,
        kind: TransactionKind,
        as_of_date: date | None = None,
    ) -> AgingReport:
        """Full summary plus overpaid transactions for ``kind``."""
        as_of = as_of_date or self._clock.today()
        snapshots = self._selector.open_snapshots(kind)
        return self._classifier.build_report(snapshots, as_of, kind=TransactionKind(kind))
