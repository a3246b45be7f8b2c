"""
Tests for RecurrenceCalculator.next_occurrence.

Reference dates below: 2024-01-01 is a Monday, 2024 is a leap year.
"""

from datetime import date, datetime, timezone

import pytest

from expense_schedules.domain.recurrence import (
    RecurrenceCalculator,
    as_date,
    at_midday,
    parse_month_days,
    parse_weekdays,
    parse_year_days,
)
from expense_schedules.domain.types import ScheduleType


def noon(year, month, day):
    return datetime(year, month, day, 12, tzinfo=timezone.utc)


@pytest.fixture
def calc():
    return RecurrenceCalculator()


class TestWeekly:
    def test_next_matching_weekday(self, calc):
        # Mon 2024-01-01 -> search from Tue -> Wed matches "1,3,5"
        result = calc.next_occurrence(
            ScheduleType.WEEKLY, "1,3,5", date(2024, 1, 1), None, date(2024, 1, 1)
        )
        assert result == noon(2024, 1, 3)

    def test_reference_before_start_searches_from_start(self, calc):
        # Start Wed 2024-01-10 itself matches
        result = calc.next_occurrence(
            ScheduleType.WEEKLY, "3", date(2024, 1, 10), None, date(2024, 1, 1)
        )
        assert result == noon(2024, 1, 10)

    def test_wraps_to_next_week(self, calc):
        # Fri 2024-01-05 -> next Monday
        result = calc.next_occurrence(
            ScheduleType.WEEKLY, "1", date(2024, 1, 1), None, date(2024, 1, 5)
        )
        assert result == noon(2024, 1, 8)

    def test_accepts_string_type_and_datetimes(self, calc):
        result = calc.next_occurrence(
            "weekly", "7", noon(2024, 1, 1), None, noon(2024, 1, 1)
        )
        assert result == noon(2024, 1, 7)

    def test_empty_days_logs_and_returns_none(self, calc, captured_logs):
        assert calc.next_occurrence(
            ScheduleType.WEEKLY, "", date(2024, 1, 1), None, date(2024, 1, 1)
        ) is None
        assert any(r["message"] == "no_occurrence_within_horizon" for r in captured_logs())


class TestMonthly:
    def test_last_day_of_leap_february(self, calc):
        result = calc.next_occurrence(
            ScheduleType.MONTHLY, "last", date(2024, 1, 1), None, date(2024, 2, 10)
        )
        assert result == noon(2024, 2, 29)

    def test_day_31_clamps_to_short_month(self, calc):
        result = calc.next_occurrence(
            ScheduleType.MONTHLY, "31", date(2024, 1, 1), None, date(2024, 4, 1)
        )
        assert result == noon(2024, 4, 30)

    def test_multiple_days(self, calc):
        result = calc.next_occurrence(
            ScheduleType.MONTHLY, "1,15", date(2024, 1, 1), None, date(2024, 1, 1)
        )
        assert result == noon(2024, 1, 15)

    def test_rolls_into_next_month(self, calc):
        result = calc.next_occurrence(
            ScheduleType.MONTHLY, "10", date(2024, 1, 1), None, date(2024, 1, 20)
        )
        assert result == noon(2024, 2, 10)


class TestYearly:
    def test_same_year(self, calc):
        result = calc.next_occurrence(
            ScheduleType.YEARLY, "06-15", date(2024, 1, 1), None, date(2024, 1, 1)
        )
        assert result == noon(2024, 6, 15)

    def test_next_year(self, calc):
        result = calc.next_occurrence(
            ScheduleType.YEARLY, "01-15,06-15", date(2024, 1, 1), None, date(2024, 7, 1)
        )
        assert result == noon(2025, 1, 15)

    def test_leap_day_skips_to_next_leap_year(self, calc):
        result = calc.next_occurrence(
            ScheduleType.YEARLY, "02-29", date(2024, 1, 1), None, date(2024, 3, 1)
        )
        assert result == noon(2028, 2, 29)

    def test_leap_day_across_skipped_century(self, calc):
        # 2100 is not a leap year; the next 02-29 after 2096 is eight years out.
        result = calc.next_occurrence(
            ScheduleType.YEARLY, "02-29", date(2096, 1, 1), None, date(2096, 3, 1)
        )
        assert result == noon(2104, 2, 29)


class TestOneTime:
    def test_future_date(self, calc):
        result = calc.next_occurrence(
            ScheduleType.ONE_TIME, "2024-05-01", date(2024, 1, 1), None, date(2024, 3, 1)
        )
        assert result == noon(2024, 5, 1)

    def test_reference_on_target_is_exhausted(self, calc):
        assert calc.next_occurrence(
            ScheduleType.ONE_TIME, "2024-05-01", date(2024, 1, 1), None, date(2024, 5, 1)
        ) is None

    def test_miss_does_not_warn(self, calc, captured_logs):
        calc.next_occurrence(
            ScheduleType.ONE_TIME, "2024-01-01", date(2024, 1, 1), None, date(2024, 3, 1)
        )
        assert not any(r["level"] == "WARNING" for r in captured_logs())


class TestEndDate:
    def test_match_on_end_day_is_included(self, calc):
        result = calc.next_occurrence(
            ScheduleType.WEEKLY, "3", date(2024, 1, 1), noon(2024, 1, 3), date(2024, 1, 1)
        )
        assert result == noon(2024, 1, 3)

    def test_match_after_end_is_none(self, calc):
        assert calc.next_occurrence(
            ScheduleType.WEEKLY, "5", date(2024, 1, 1), noon(2024, 1, 4), date(2024, 1, 1)
        ) is None


class TestProperties:
    @pytest.mark.parametrize(
        "schedule_type, days",
        [
            (ScheduleType.WEEKLY, "2,6"),
            (ScheduleType.MONTHLY, "5,last"),
            (ScheduleType.YEARLY, "03-01,11-30"),
        ],
    )
    def test_result_is_after_reference_and_at_midday(self, calc, schedule_type, days):
        reference = date(2024, 1, 1)
        for _ in range(20):
            result = calc.next_occurrence(schedule_type, days, date(2024, 1, 1), None, reference)
            assert result is not None
            assert result.date() > reference
            assert (result.hour, result.minute, result.tzinfo) == (12, 0, timezone.utc)
            reference = result.date()


class TestParsers:
    def test_weekdays_drop_invalid(self):
        assert parse_weekdays("1, 3,9,x") == {1, 3}

    def test_month_days(self):
        assert parse_month_days("1,LAST,40") == ({1}, True)

    def test_year_days(self):
        assert parse_year_days("01-15,13-01,bad") == [(1, 15)]

    def test_as_date_and_midday(self):
        assert as_date(noon(2024, 1, 1)) == date(2024, 1, 1)
        assert at_midday(date(2024, 1, 1)) == noon(2024, 1, 1)
