"""
Pure lifecycle rules for expense schedules.

Contract:
    Guard functions raise typed errors when a transition is not allowed;
    the remaining helpers compute cursors and completion.  No I/O; the
    caller supplies "today".

Transitions:
    create -> ACTIVE
    ACTIVE -> PAUSED          (pause)
    PAUSED -> ACTIVE          (resume)
    ACTIVE -> COMPLETED       (ONE_TIME materialized, or window exhausted)
    COMPLETED is terminal.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from expense_kernel.exceptions import ScheduleNotStartedError, ScheduleStateError
from expense_schedules.domain.recurrence import as_date, at_midday
from expense_schedules.domain.types import ExpenseSchedule, ScheduleStatus, ScheduleType


def check_can_pause(schedule: ExpenseSchedule) -> None:
    if schedule.status == ScheduleStatus.PAUSED:
        raise ScheduleStateError(
            schedule.schedule_id, schedule.status.value, "Schedule is already paused"
        )
    if schedule.status == ScheduleStatus.COMPLETED:
        raise ScheduleStateError(
            schedule.schedule_id,
            schedule.status.value,
            "Cannot pause a completed schedule",
        )


def check_can_resume(schedule: ExpenseSchedule, today: date) -> None:
    if schedule.status == ScheduleStatus.ACTIVE:
        raise ScheduleStateError(
            schedule.schedule_id, schedule.status.value, "Schedule is already active"
        )
    if schedule.status == ScheduleStatus.COMPLETED:
        raise ScheduleStateError(
            schedule.schedule_id,
            schedule.status.value,
            "Cannot resume a completed schedule",
        )
    if schedule.end_at is not None and as_date(schedule.end_at) < today:
        raise ScheduleStateError(
            schedule.schedule_id,
            schedule.status.value,
            "Cannot resume a schedule whose end date has passed",
        )


def check_can_run(schedule: ExpenseSchedule, today: date) -> None:
    if schedule.status == ScheduleStatus.COMPLETED:
        raise ScheduleStateError(
            schedule.schedule_id,
            schedule.status.value,
            "Cannot run a completed schedule",
        )
    if as_date(schedule.start_at) > today:
        raise ScheduleNotStartedError(
            schedule.schedule_id, schedule.start_at.isoformat()
        )


def resume_cursor(last_added_at: datetime | None, today: date) -> datetime:
    """
    Cursor to resume from: never before yesterday, never moved backward.

    Occurrences inside the paused period are therefore never backfilled.
    """
    yesterday = today - timedelta(days=1)
    if last_added_at is not None and as_date(last_added_at) >= yesterday:
        return last_added_at
    return at_midday(yesterday)


def advance_cursor(
    last_added_at: datetime | None,
    candidate: datetime | None,
) -> datetime | None:
    """The later of the current cursor and ``candidate``."""
    if candidate is None:
        return last_added_at
    if last_added_at is None or as_date(candidate) > as_date(last_added_at):
        return candidate
    return last_added_at


def effective_end(end_at: datetime | None, today: date) -> date:
    """Last calendar day that may be materialized: min(end_at, today)."""
    if end_at is not None and as_date(end_at) < today:
        return as_date(end_at)
    return today


def is_exhausted(
    schedule_type: ScheduleType,
    next_scheduled_at: datetime | None,
    end_at: datetime | None,
    today: date,
    *,
    materialized: bool,
) -> bool:
    """
    Whether a schedule should move to COMPLETED.

    ``materialized`` is True once the ONE_TIME occurrence has been produced.
    """
    if schedule_type == ScheduleType.ONE_TIME and materialized:
        return True
    return (
        next_scheduled_at is None
        and end_at is not None
        and as_date(end_at) <= today
    )
