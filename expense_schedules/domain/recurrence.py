"""
Pure recurrence evaluation for expense schedules.

Contract:
    ``RecurrenceCalculator.next_occurrence`` and
    ``RangeExpander.occurrences_in_range`` are PURE apart from warning logs --
    no database access, no clock reads.  Every "today" is supplied by the
    caller.

Architecture: expense_schedules/domain.  ZERO I/O.

Invariants enforced:
    - Every returned occurrence is an aware datetime at 12:00 UTC.
    - Searches are bounded (search horizons, iteration cap); a miss is
      logged and returned as None / a truncated list, never raised.
    - End dates are inclusive by calendar day.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone

from expense_kernel.domain.clock import ensure_utc
from expense_kernel.logging_config import get_logger
from expense_schedules.domain.types import ScheduleType

logger = get_logger("schedules.recurrence")

MIDDAY = time(12, 0)
LAST_DAY_TOKEN = "last"


# =============================================================================
# Helpers
# =============================================================================


def as_date(value: datetime | date) -> date:
    """UTC calendar date of ``value``."""
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    return value


def at_midday(day: date) -> datetime:
    """Canonical occurrence timestamp for ``day``: 12:00 UTC."""
    return datetime.combine(day, MIDDAY, tzinfo=timezone.utc)


def _tokens(schedule_days: str | None) -> list[str]:
    if not schedule_days:
        return []
    return [t.strip() for t in schedule_days.split(",") if t.strip()]


def parse_weekdays(schedule_days: str | None) -> set[int]:
    """ISO weekday numbers (1=Mon..7=Sun); invalid tokens are dropped."""
    days: set[int] = set()
    for token in _tokens(schedule_days):
        if token.isdigit() and 1 <= int(token) <= 7:
            days.add(int(token))
    return days


def parse_month_days(schedule_days: str | None) -> tuple[set[int], bool]:
    """(numeric days 1-31, whether ``last`` was given); invalid tokens dropped."""
    days: set[int] = set()
    has_last = False
    for token in _tokens(schedule_days):
        if token.lower() == LAST_DAY_TOKEN:
            has_last = True
        elif token.isdigit() and 1 <= int(token) <= 31:
            days.add(int(token))
    return days, has_last


def parse_year_days(schedule_days: str | None) -> list[tuple[int, int]]:
    """(month, day) pairs from ``MM-DD`` tokens; malformed tokens dropped."""
    pairs: list[tuple[int, int]] = []
    for token in _tokens(schedule_days):
        parts = token.split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            continue
        month, day = int(parts[0]), int(parts[1])
        if 1 <= month <= 12 and 1 <= day <= 31:
            pairs.append((month, day))
    return pairs


def parse_one_time_date(schedule_days: str | None) -> date | None:
    """The single ISO date of a one-time schedule, or None if unparseable."""
    if not schedule_days:
        return None
    try:
        return date.fromisoformat(schedule_days.strip()[:10])
    except ValueError:
        return None


def _month_matches(day: date, numeric_days: set[int], has_last: bool) -> bool:
    last = calendar.monthrange(day.year, day.month)[1]
    if has_last and day.day == last:
        return True
    # Days past the end of a short month fall on its last day.
    return any(min(n, last) == day.day for n in numeric_days)


# =============================================================================
# RecurrenceCalculator
# =============================================================================


class RecurrenceCalculator:
    """
    Finds the next occurrence of a schedule after a reference date.

    Contract:
        The search begins the day after ``reference_date``, unless
        ``reference_date`` precedes ``start_at``, in which case it begins at
        ``start_at``.  A match later than ``end_at`` (by calendar day) yields
        None.

    Non-goals:
        Input validation.  Malformed tokens are skipped here; the
        validation module rejects them at create / update time.
    """

    def __init__(
        self,
        weekly_search_days: int = 14,
        monthly_search_days: int = 62,
        yearly_search_years: int = 9,
    ):
        self._weekly_search_days = weekly_search_days
        self._monthly_search_days = monthly_search_days
        self._yearly_search_years = yearly_search_years

    def next_occurrence(
        self,
        schedule_type: ScheduleType | str,
        schedule_days: str | None,
        start_at: datetime | date,
        end_at: datetime | date | None,
        reference_date: datetime | date,
    ) -> datetime | None:
        schedule_type = ScheduleType(schedule_type)
        start = as_date(start_at)
        reference = as_date(reference_date)
        search_from = start if reference < start else reference + timedelta(days=1)

        if schedule_type == ScheduleType.ONE_TIME:
            target = parse_one_time_date(schedule_days)
            found = target if target is not None and target >= search_from else None
            if found is None:
                return None
        else:
            if schedule_type == ScheduleType.WEEKLY:
                found = self._next_weekly(schedule_days, search_from)
            elif schedule_type == ScheduleType.MONTHLY:
                found = self._next_monthly(schedule_days, search_from)
            else:
                found = self._next_yearly(schedule_days, search_from)

            if found is None:
                logger.warning(
                    "no_occurrence_within_horizon",
                    extra={
                        "schedule_type": schedule_type.value,
                        "schedule_days": schedule_days,
                        "search_from": search_from,
                    },
                )
                return None

        if end_at is not None and found > as_date(end_at):
            return None
        return at_midday(found)

    def _next_weekly(self, schedule_days: str | None, search_from: date) -> date | None:
        weekdays = parse_weekdays(schedule_days)
        if not weekdays:
            return None
        for offset in range(self._weekly_search_days):
            candidate = search_from + timedelta(days=offset)
            if candidate.isoweekday() in weekdays:
                return candidate
        return None

    def _next_monthly(self, schedule_days: str | None, search_from: date) -> date | None:
        numeric_days, has_last = parse_month_days(schedule_days)
        if not numeric_days and not has_last:
            return None
        for offset in range(self._monthly_search_days):
            candidate = search_from + timedelta(days=offset)
            if _month_matches(candidate, numeric_days, has_last):
                return candidate
        return None

    def _next_yearly(self, schedule_days: str | None, search_from: date) -> date | None:
        pairs = parse_year_days(schedule_days)
        if not pairs:
            return None
        for year in range(search_from.year, search_from.year + self._yearly_search_years):
            candidates = []
            for month, day in pairs:
                try:
                    candidates.append(date(year, month, day))
                except ValueError:
                    # 02-29 outside leap years, 04-31, ...
                    continue
            for candidate in sorted(candidates):
                if candidate >= search_from:
                    return candidate
        return None


# =============================================================================
# RangeExpander
# =============================================================================


class RangeExpander:
    """
    Lists every occurrence of a schedule inside an inclusive date range.

    Contract:
        Results are ascending, at 12:00 UTC, inside
        ``[range_start, range_end]`` and strictly after ``after_date``
        (default: the day before ``range_start``).  At most
        ``max_iterations`` results are produced; reaching the cap logs a
        warning.
    """

    def __init__(self, calculator: RecurrenceCalculator, max_iterations: int = 2000):
        self._calculator = calculator
        self._max_iterations = max_iterations

    @property
    def calculator(self) -> RecurrenceCalculator:
        return self._calculator

    def occurrences_in_range(
        self,
        schedule_type: ScheduleType | str,
        schedule_days: str | None,
        range_start: datetime | date,
        range_end: datetime | date,
        after_date: datetime | date | None = None,
    ) -> list[datetime]:
        schedule_type = ScheduleType(schedule_type)
        start = as_date(range_start)
        end = as_date(range_end)
        after = as_date(after_date) if after_date is not None else start - timedelta(days=1)

        if end < start:
            return []

        if schedule_type == ScheduleType.ONE_TIME:
            target = parse_one_time_date(schedule_days)
            if target is not None and after < target <= end and target >= start:
                return [at_midday(target)]
            return []

        results: list[datetime] = []
        reference = after
        for _ in range(self._max_iterations):
            occurrence = self._calculator.next_occurrence(
                schedule_type, schedule_days, start, end, reference
            )
            if occurrence is None:
                break
            results.append(occurrence)
            reference = occurrence.date()
        else:
            logger.warning(
                "range_iteration_cap_reached",
                extra={
                    "schedule_type": schedule_type.value,
                    "schedule_days": schedule_days,
                    "range_start": start,
                    "range_end": end,
                    "max_iterations": self._max_iterations,
                },
            )
        return results
