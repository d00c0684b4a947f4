"""
Clock -- injectable source of "now" and of the default as-of date.

Responsibility:
    Services and the aging report take a Clock instead of reading
    ``datetime.now()``/``date.today()``, so reports and event timestamps
    are reproducible under test.

Architecture position:
    Kernel > Domain.  SystemClock is the only place the ledger reads
    wall-clock time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Fixed clock for tests, 2025-01-31 12:00 UTC unless told otherwise.

    Time only moves through ``advance()``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2025, 1, 31, 12, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, *, days: int = 0, seconds: int = 0) -> None:
        self._current += timedelta(days=days, seconds=seconds)
