"""
Input validation for creating and editing expense schedules.

Contract:
    ``normalize_schedule_input`` turns caller-supplied values into typed
    values (UUID, Decimal, aware datetime, ScheduleType) and rejects
    malformed ones.  ``validate_schedule`` checks cross-field rules on the
    merged result.  Both raise ``ScheduleValidationError`` naming the field.

Architecture: expense_schedules/domain.  ZERO I/O; "today" is an argument.
Car ownership checks need the database and live in the lifecycle service.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from expense_kernel.db.types import ZERO, to_money, validate_currency
from expense_kernel.domain.clock import ensure_utc
from expense_kernel.exceptions import InvalidCurrencyError, ScheduleValidationError
from expense_schedules.domain.types import ScheduleType

WEEKLY_DAYS_PATTERN = re.compile(r"^[1-7](,[1-7])*$")
MONTHLY_DAYS_PATTERN = re.compile(
    r"^(last|[1-9]|[12]\d|3[01])(,(last|[1-9]|[12]\d|3[01]))*$"
)
YEARLY_DAYS_PATTERN = re.compile(
    r"^(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])(,(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01]))*$"
)
ONE_TIME_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MAX_SCHEDULE_TYPE_LENGTH = 16
MAX_SCHEDULE_DAYS_LENGTH = 64
MAX_WHERE_DONE_LENGTH = 128
MAX_SHORT_NOTE_LENGTH = 128

MONEY_FIELDS = ("cost_work", "cost_parts", "tax", "fees", "subtotal", "total_price")
TEXT_FIELDS = {
    "where_done": MAX_WHERE_DONE_LENGTH,
    "short_note": MAX_SHORT_NOTE_LENGTH,
    "comments": None,
}
SCHEDULE_INPUT_FIELDS = frozenset(
    {
        "car_id",
        "kind_id",
        "schedule_type",
        "schedule_days",
        "start_at",
        "end_at",
        "paid_in_currency",
        *MONEY_FIELDS,
        *TEXT_FIELDS,
    }
)
REQUIRED_ON_CREATE = ("car_id", "kind_id", "schedule_type", "schedule_days", "start_at")

_FIELD_LABELS = {
    "car_id": "Car ID",
    "kind_id": "Kind ID",
    "schedule_type": "Schedule type",
    "schedule_days": "Schedule days",
    "start_at": "Start date",
    "end_at": "End date",
}


# =============================================================================
# Field coercion
# =============================================================================


def _parse_datetime(field: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ScheduleValidationError(
        field, f"{_FIELD_LABELS.get(field, field)} should be a valid datetime"
    )


def _parse_uuid(field: str, value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ScheduleValidationError(
            field, f"{_FIELD_LABELS.get(field, field)} should be a valid UUID"
        ) from None


def _parse_kind_id(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ScheduleValidationError("kind_id", "Kind ID should be an integer")
    try:
        return int(value)
    except ValueError:
        raise ScheduleValidationError("kind_id", "Kind ID should be an integer") from None


def _parse_schedule_type(value: Any) -> ScheduleType:
    try:
        return ScheduleType(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in ScheduleType)
        raise ScheduleValidationError(
            "schedule_type", f"Schedule type must be one of: {allowed}"
        ) from None


def normalize_schedule_input(
    data: Mapping[str, Any],
    *,
    partial: bool,
) -> dict[str, Any]:
    """
    Coerce caller input into typed schedule values.

    Args:
        data: Field name -> value.  Only fields in ``SCHEDULE_INPUT_FIELDS``
            are accepted.
        partial: True for updates (only supplied fields are checked); False
            for creation (``REQUIRED_ON_CREATE`` must be present).

    Raises:
        ScheduleValidationError: naming the first offending field.
    """
    unknown = sorted(set(data) - SCHEDULE_INPUT_FIELDS)
    if unknown:
        raise ScheduleValidationError(unknown[0], f"Unknown field: {unknown[0]}")

    if not partial:
        for name in REQUIRED_ON_CREATE:
            if data.get(name) in (None, ""):
                raise ScheduleValidationError(
                    name, f"{_FIELD_LABELS[name]} is required"
                )

    values: dict[str, Any] = {}
    for name, raw in data.items():
        if name in REQUIRED_ON_CREATE and raw in (None, ""):
            raise ScheduleValidationError(name, f"{_FIELD_LABELS[name]} is required")

        if name == "car_id":
            values[name] = _parse_uuid(name, raw)
        elif name == "kind_id":
            values[name] = _parse_kind_id(raw)
        elif name == "schedule_type":
            values[name] = _parse_schedule_type(raw)
        elif name == "schedule_days":
            if not isinstance(raw, str):
                raise ScheduleValidationError(name, "Schedule days should be a string")
            days = raw.replace(" ", "")
            if len(days) > MAX_SCHEDULE_DAYS_LENGTH:
                raise ScheduleValidationError(
                    name,
                    f"Schedule days should not exceed {MAX_SCHEDULE_DAYS_LENGTH} characters",
                )
            values[name] = days
        elif name in ("start_at", "end_at"):
            values[name] = None if raw in (None, "") else _parse_datetime(name, raw)
        elif name in MONEY_FIELDS:
            try:
                values[name] = to_money(raw)
            except ValueError:
                raise ScheduleValidationError(name, f"{name} should be a number") from None
        elif name == "paid_in_currency":
            if raw in (None, ""):
                values[name] = None
            else:
                try:
                    values[name] = validate_currency(raw)
                except InvalidCurrencyError:
                    raise ScheduleValidationError(
                        name,
                        "Paid in currency should be a valid ISO 4217 code (3 characters)",
                    ) from None
        else:
            limit = TEXT_FIELDS[name]
            if raw is not None and not isinstance(raw, str):
                raise ScheduleValidationError(name, f"{name} should be a string")
            if raw is not None and limit is not None and len(raw) > limit:
                raise ScheduleValidationError(
                    name, f"{name} should not exceed {limit} characters"
                )
            values[name] = raw
    return values


# =============================================================================
# Cross-field rules
# =============================================================================


def _check_no_duplicates(tokens: list[str], label: str) -> None:
    if len(set(tokens)) != len(tokens):
        raise ScheduleValidationError(
            "schedule_days", f"{label} schedule days must not contain duplicates"
        )


def validate_schedule_days(schedule_type: ScheduleType, schedule_days: str) -> None:
    """
    Check ``schedule_days`` against the grammar of ``schedule_type``.

    Raises:
        ScheduleValidationError: on field ``schedule_days``.
    """
    tokens = schedule_days.split(",")

    if schedule_type == ScheduleType.WEEKLY:
        if not WEEKLY_DAYS_PATTERN.match(schedule_days):
            raise ScheduleValidationError(
                "schedule_days",
                'Weekly schedule days must be comma-separated numbers 1-7 '
                '(1=Monday, 7=Sunday). Example: "1,3,5"',
            )
        _check_no_duplicates(tokens, "Weekly")

    elif schedule_type == ScheduleType.MONTHLY:
        if not MONTHLY_DAYS_PATTERN.match(schedule_days):
            raise ScheduleValidationError(
                "schedule_days",
                'Monthly schedule days must be comma-separated numbers 1-31 or "last". '
                'Example: "1,15,last"',
            )
        _check_no_duplicates(tokens, "Monthly")

    elif schedule_type == ScheduleType.YEARLY:
        if not YEARLY_DAYS_PATTERN.match(schedule_days):
            raise ScheduleValidationError(
                "schedule_days",
                'Yearly schedule days must be comma-separated MM-DD dates. '
                'Example: "01-15,06-15"',
            )
        _check_no_duplicates(tokens, "Yearly")
        for token in tokens:
            month, day = (int(p) for p in token.split("-"))
            # Leap year: 02-29 is allowed and only fires in leap years.
            if day > calendar.monthrange(2024, month)[1]:
                raise ScheduleValidationError(
                    "schedule_days",
                    f"Invalid date in yearly schedule: {token}. "
                    f"Day {day} is not valid for month {month}",
                )

    else:
        if not ONE_TIME_DATE_PATTERN.match(schedule_days):
            raise ScheduleValidationError(
                "schedule_days",
                'One-time schedule must be a single YYYY-MM-DD date. Example: "2026-06-20"',
            )
        try:
            date.fromisoformat(schedule_days)
        except ValueError:
            raise ScheduleValidationError(
                "schedule_days", f"Invalid one-time date: {schedule_days}"
            ) from None


def validate_schedule(
    schedule_type: ScheduleType,
    schedule_days: str,
    start_at: datetime,
    end_at: datetime | None,
    today: date,
    *,
    check_one_time_past: bool = True,
) -> None:
    """
    Validate the merged recurrence fields of a schedule.

    Raises:
        ScheduleValidationError: on the first failing rule.
    """
    validate_schedule_days(schedule_type, schedule_days)

    if end_at is not None and end_at <= start_at:
        raise ScheduleValidationError("end_at", "End date must be after start date")

    if check_one_time_past and schedule_type == ScheduleType.ONE_TIME:
        if date.fromisoformat(schedule_days) < today:
            raise ScheduleValidationError(
                "schedule_days", "One-time schedule date cannot be in the past"
            )


def compute_totals(
    cost_work: Decimal | None,
    cost_parts: Decimal | None,
    tax: Decimal | None,
    fees: Decimal | None,
    subtotal: Decimal | None,
    total_price: Decimal | None,
) -> tuple[Decimal, Decimal]:
    """
    Fill in subtotal and total price when the caller left them out.

    ``subtotal = cost_work + cost_parts``; ``total_price = subtotal + tax +
    fees``.  Explicit values win.
    """
    if subtotal is None:
        subtotal = (cost_work or ZERO) + (cost_parts or ZERO)
    if total_price is None:
        total_price = subtotal + (tax or ZERO) + (fees or ZERO)
    return subtotal, total_price
