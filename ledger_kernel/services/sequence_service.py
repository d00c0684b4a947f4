"""
Counter stores -- atomic read-and-increment of document sequence counters.

Responsibility:
    Provides ``increment_and_get(prefix)`` for period-scoped document
    numbers.  ``SqlCounterStore`` uses a dedicated counter table with
    row-level locking (``SELECT ... FOR UPDATE``); ``InMemoryCounterStore``
    guards a dict with a lock and lets tests inject contention.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Injected into ``DocumentNumberGenerator``; never reached through
    module-level state.

Invariants enforced:
    - At most one allocation per sequence value: the locked counter row is
      the sole source of truth for the next value.  The aggregate
      max-plus-one pattern over document numbers is never used.
    - Smallest critical section: each SQL allocation runs in its own short
      transaction that commits before returning, so the lock is not held
      while the rest of the document is validated and saved.
    - Gap tolerant: a number whose document later fails to save is not
      handed out again.

Failure modes:
    - CounterContentionError: the counter row was created concurrently
      (IntegrityError) or the lock could not be taken (OperationalError).
      Transient; the generator retries.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.exceptions import CounterContentionError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import DocumentSequenceCounter

logger = get_logger("services.sequence")


@runtime_checkable
class CounterStore(Protocol):
    """
    Atomic per-prefix counter.

    Contract:
        ``increment_and_get`` creates the counter at 0 if absent, adds one,
        persists the increment and returns the new value.  Two callers never
        observe the same value for the same prefix.
    """

    def increment_and_get(self, prefix: str) -> int: ...


class InMemoryCounterStore:
    """
    Process-local counter store.

    Contract:
        Serialises increments with a ``threading.Lock``.  Suitable for tests
        and single-process tools.

    Args:
        on_increment: Optional hook called inside the critical section with
            ``(prefix, candidate_value)`` before the value is stored.  It may
            sleep (to widen race windows) or raise ``CounterContentionError``
            (to simulate a lost race); when it raises, nothing is stored.
    """

    def __init__(
        self,
        on_increment: Callable[[str, int], None] | None = None,
    ):
        self._values: dict[str, int] = {}
        self._lock = threading.Lock()
        self._on_increment = on_increment

    def increment_and_get(self, prefix: str) -> int:
        with self._lock:
            value = self._values.get(prefix, 0) + 1
            if self._on_increment is not None:
                self._on_increment(prefix, value)
            self._values[prefix] = value
        logger.debug(
            "sequence_allocated",
            extra={"prefix": prefix, "value": value},
        )
        return value

    def current_value(self, prefix: str) -> int | None:
        with self._lock:
            return self._values.get(prefix)


class SqlCounterStore:
    """
    Counter store backed by the ``document_sequence_counters`` table.

    Contract:
        Every call opens its own session from ``session_factory``, locks the
        prefix row, increments it and commits.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serialises concurrent allocations for
          the same prefix.
        - The counter row is created lazily on first use.

    Non-goals:
        - Does NOT join the caller's transaction; a rolled-back document
          leaves a gap rather than a reused number.

    Usage:
        store = SqlCounterStore(get_session_factory())
        store.increment_and_get("PO-202501")  # 1
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def increment_and_get(self, prefix: str) -> int:
        """
        Lock, increment and commit the counter for ``prefix``.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for this prefix.

        Raises:
            CounterContentionError: the row was created by a concurrent
                caller or the lock could not be acquired.  Nothing was
                allocated; retrying is safe.
        """
        session = self._session_factory()
        try:
            with session.begin():
                counter = session.execute(
                    select(DocumentSequenceCounter)
                    .where(DocumentSequenceCounter.prefix == prefix)
                    .with_for_update()  # Row-level lock
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()

                if counter is None:
                    counter = DocumentSequenceCounter(prefix=prefix, current_value=1)
                    session.add(counter)
                else:
                    counter.current_value += 1
                session.flush()
                value = counter.current_value
        except IntegrityError as exc:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"prefix": prefix},
            )
            raise CounterContentionError(prefix, "counter created concurrently") from exc
        except OperationalError as exc:
            logger.warning(
                "sequence_counter_lock_failed",
                extra={"prefix": prefix, "error": str(exc.orig)},
            )
            raise CounterContentionError(prefix, "counter lock not acquired") from exc
        finally:
            session.close()

        assert value > 0, "sequence value must be strictly positive"
        logger.debug(
            "sequence_allocated",
            extra={"prefix": prefix, "value": value},
        )
        return value

    def current_value(self, prefix: str) -> int | None:
        """
        Get the last issued value without incrementing.

        Returns:
            Current value, or None if no number was issued for the prefix yet.
        """
        with self._session_factory() as session:
            return session.execute(
                select(DocumentSequenceCounter.current_value)
                .where(DocumentSequenceCounter.prefix == prefix)
            ).scalar_one_or_none()
