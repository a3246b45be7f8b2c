"""Tests for schedule input normalization and cross-field validation."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.exceptions import ScheduleValidationError
from expense_schedules.domain.types import ScheduleType
from expense_schedules.domain.validation import (
    compute_totals,
    normalize_schedule_input,
    validate_schedule,
    validate_schedule_days,
)

TODAY = date(2024, 3, 15)
START = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _create_input(**overrides):
    data = {
        "car_id": str(uuid4()),
        "kind_id": "7",
        "schedule_type": "Weekly",
        "schedule_days": "1, 3, 5",
        "start_at": "2024-03-01T00:00:00Z",
    }
    data.update(overrides)
    return data


class TestNormalize:
    def test_coerces_types(self):
        values = normalize_schedule_input(
            _create_input(cost_work="40.5", paid_in_currency="eur"), partial=False
        )
        assert values["kind_id"] == 7
        assert values["schedule_type"] == ScheduleType.WEEKLY
        assert values["schedule_days"] == "1,3,5"
        assert values["start_at"] == START
        assert values["cost_work"] == Decimal("40.5")
        assert values["paid_in_currency"] == "EUR"

    def test_naive_datetime_becomes_utc(self):
        values = normalize_schedule_input(
            _create_input(start_at=datetime(2024, 3, 1)), partial=False
        )
        assert values["start_at"].tzinfo == timezone.utc

    @pytest.mark.parametrize("missing", ["car_id", "kind_id", "schedule_type", "schedule_days", "start_at"])
    def test_required_on_create(self, missing):
        data = _create_input()
        del data[missing]
        with pytest.raises(ScheduleValidationError) as exc_info:
            normalize_schedule_input(data, partial=False)
        assert exc_info.value.field == missing

    def test_partial_accepts_subset(self):
        assert normalize_schedule_input({"short_note": "x"}, partial=True) == {"short_note": "x"}

    def test_partial_rejects_clearing_required(self):
        with pytest.raises(ScheduleValidationError):
            normalize_schedule_input({"schedule_days": ""}, partial=True)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("car_id", "not-a-uuid"),
            ("kind_id", "seven"),
            ("kind_id", True),
            ("schedule_type", "daily"),
            ("start_at", "yesterday"),
            ("cost_parts", "ten"),
            ("paid_in_currency", "XXQ"),
            ("where_done", "x" * 129),
            ("short_note", "x" * 129),
            ("schedule_days", "1," * 40),
            ("status", "active"),
        ],
    )
    def test_rejects_bad_values(self, field, value):
        with pytest.raises(ScheduleValidationError) as exc_info:
            normalize_schedule_input(_create_input(**{field: value}), partial=False)
        assert exc_info.value.field == field


class TestScheduleDays:
    @pytest.mark.parametrize(
        "schedule_type, days",
        [
            (ScheduleType.WEEKLY, "1,7"),
            (ScheduleType.MONTHLY, "1,15,last"),
            (ScheduleType.YEARLY, "01-15,02-29"),
            (ScheduleType.ONE_TIME, "2024-06-20"),
        ],
    )
    def test_valid(self, schedule_type, days):
        validate_schedule_days(schedule_type, days)

    @pytest.mark.parametrize(
        "schedule_type, days",
        [
            (ScheduleType.WEEKLY, "0,8"),
            (ScheduleType.WEEKLY, "1,1"),
            (ScheduleType.MONTHLY, "32"),
            (ScheduleType.MONTHLY, "last,last"),
            (ScheduleType.YEARLY, "1-15"),
            (ScheduleType.YEARLY, "02-30"),
            (ScheduleType.YEARLY, "04-31"),
            (ScheduleType.ONE_TIME, "2024-02-30"),
            (ScheduleType.ONE_TIME, "2024-03-01,2024-03-02"),
        ],
    )
    def test_invalid(self, schedule_type, days):
        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_schedule_days(schedule_type, days)
        assert exc_info.value.field == "schedule_days"


class TestValidateSchedule:
    def test_end_must_follow_start(self):
        with pytest.raises(ScheduleValidationError, match="End date must be after start date"):
            validate_schedule(ScheduleType.WEEKLY, "1", START, START, TODAY)

    def test_one_time_in_past_rejected(self):
        with pytest.raises(ScheduleValidationError, match="cannot be in the past"):
            validate_schedule(ScheduleType.ONE_TIME, "2024-03-14", START, None, TODAY)

    def test_one_time_today_allowed(self):
        validate_schedule(ScheduleType.ONE_TIME, "2024-03-15", START, None, TODAY)

    def test_past_check_can_be_skipped(self):
        validate_schedule(
            ScheduleType.ONE_TIME, "2024-03-14", START, None, TODAY, check_one_time_past=False
        )


class TestComputeTotals:
    def test_fills_missing_totals(self):
        assert compute_totals(
            Decimal("40"), Decimal("10"), Decimal("5"), Decimal("1"), None, None
        ) == (Decimal("50"), Decimal("56"))

    def test_all_empty_is_zero(self):
        assert compute_totals(None, None, None, None, None, None) == (Decimal("0"), Decimal("0"))

    def test_explicit_values_win(self):
        assert compute_totals(
            Decimal("40"), None, None, None, Decimal("45"), Decimal("60")
        ) == (Decimal("45"), Decimal("60"))
