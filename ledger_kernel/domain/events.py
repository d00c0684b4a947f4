"""
Ledger events -- plain data records for cross-cutting subscribers.

Responsibility:
    Defines ``LedgerEvent`` (what happened to which document) and the
    ``EventBus`` that queues events until an external dispatcher drains
    them.  The core never calls notification code directly; it publishes a
    record and moves on.

Architecture position:
    Kernel > Domain -- pure data plus an in-process queue, no I/O.

Failure modes:
    - Subscriber exceptions propagate out of ``dispatch_pending()``.  The
      failing event has already left the queue, so no subscriber sees it
      twice; the events after it stay queued.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID, uuid4

from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.events")


class LedgerEventType(str, Enum):
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PAYMENT_VOIDED = "PAYMENT_VOIDED"
    TRANSACTION_VOIDED = "TRANSACTION_VOIDED"
    STATUS_OVERRIDDEN = "STATUS_OVERRIDDEN"


@dataclass(frozen=True)
class LedgerEvent:
    """
    Immutable record of a state change worth telling someone about.

    ``payload`` is frozen into a read-only mapping on construction.
    """

    event_type: LedgerEventType
    transaction_id: UUID | str
    occurred_at: datetime
    document_no: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


Subscriber = Callable[[LedgerEvent], None]


class EventBus:
    """
    In-process publish/subscribe queue.

    Contract:
        ``publish`` only enqueues.  Delivery happens in ``dispatch_pending``,
        typically after the caller's database transaction commits, so a
        rolled-back change can be dropped with ``discard_pending``.

    Guarantees:
        - Events are delivered in publish order, each at most once.
        - Subscribers registered for an event type receive only that type;
          subscribers registered with ``None`` receive everything.
    """

    def __init__(self) -> None:
        self._subscribers: dict[LedgerEventType | None, list[Subscriber]] = {}
        self._pending: deque[LedgerEvent] = deque()
        self._lock = threading.Lock()

    def subscribe(
        self,
        subscriber: Subscriber,
        event_type: LedgerEventType | None = None,
    ) -> None:
        self._subscribers.setdefault(event_type, []).append(subscriber)

    def publish(self, event: LedgerEvent) -> None:
        with self._lock:
            self._pending.append(event)
        logger.debug("ledger_event_published", extra={
            "event_type": event.event_type.value,
            "transaction_id": str(event.transaction_id),
            "document_no": event.document_no,
        })

    @property
    def pending(self) -> tuple[LedgerEvent, ...]:
        with self._lock:
            return tuple(self._pending)

    def discard_pending(self) -> int:
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
        return count

    def dispatch_pending(self) -> int:
        """Deliver queued events to subscribers. Returns the number delivered."""
        delivered = 0
        while True:
            with self._lock:
                if not self._pending:
                    break
                event = self._pending.popleft()
            targets = (
                self._subscribers.get(event.event_type, [])
                + self._subscribers.get(None, [])
            )
            for subscriber in targets:
                try:
                    subscriber(event)
                except Exception:
                    logger.error(
                        "ledger_event_delivery_failed",
                        extra={
                            "event_type": event.event_type.value,
                            "event_id": str(event.event_id),
                            "document_no": event.document_no,
                        },
                        exc_info=True,
                    )
                    raise
            delivered += 1
        if delivered:
            logger.info("ledger_events_dispatched", extra={"count": delivered})
        return delivered
