"""
Time source for the schedule engine.

Recurrence math, lifecycle transitions and the batch processor take a
``Clock`` in their constructors and never read the wall clock themselves.
Production wiring passes ``SystemClock``; tests pass ``DeterministicClock``
and move it explicitly.

Day helpers at the bottom of the module work in UTC.  SQLite returns
timestamps without tzinfo, so values read back from the store go through
``ensure_utc`` before they are compared.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone

_DEFAULT_INSTANT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware "now"."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        """Calendar date of ``now_utc()``."""
        return self.now_utc().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance``,
    ``advance_days``, ``tick`` or ``set_time`` changes it.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or _DEFAULT_INSTANT

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Move forward one second; returns the new instant."""
        self.advance()
        return self._current


# ---------------------------------------------------------------------------
# Day helpers
# ---------------------------------------------------------------------------


def ensure_utc(value: datetime | None) -> datetime | None:
    """Naive values are taken as UTC; aware values are converted to it."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    """Last representable instant of ``day`` in UTC."""
    return datetime.combine(day, time.max, tzinfo=timezone.utc)
