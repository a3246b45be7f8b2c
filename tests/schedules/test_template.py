"""Tests for template comparison between schedules and generated expenses."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_schedules.domain.template import (
    TEMPLATE_FIELDS,
    Comparison,
    changed_fields,
    expense_needs_update,
    template_values,
    values_equal,
)
from expense_schedules.domain.types import ExpenseSchedule, GeneratedExpense, ScheduleType

WHEN = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


def _schedule(**overrides) -> ExpenseSchedule:
    values = dict(
        schedule_id=uuid4(),
        account_id=uuid4(),
        user_id=uuid4(),
        car_id=uuid4(),
        schedule_type=ScheduleType.WEEKLY,
        schedule_days="5",
        start_at=WHEN,
        kind_id=3,
        where_done="Garage",
        subtotal=Decimal("50"),
        total_price=Decimal("55"),
        tax=Decimal("5"),
        short_note="Oil",
    )
    values.update(overrides)
    return ExpenseSchedule(**values)


def _expense_matching(schedule: ExpenseSchedule, **overrides) -> GeneratedExpense:
    values = dict(
        expense_id=uuid4(),
        schedule_id=schedule.schedule_id,
        when_done=WHEN,
        **template_values(schedule),
    )
    values.update(overrides)
    return GeneratedExpense(**values)


class TestValuesEqual:
    def test_null_equals_null(self):
        assert values_equal(None, None, Comparison.TEXT)

    @pytest.mark.parametrize("left, right", [(None, "x"), ("x", None), (None, Decimal("0"))])
    def test_null_never_equals_value(self, left, right):
        assert not values_equal(left, right, Comparison.NUMERIC)

    def test_numeric_by_value(self):
        assert values_equal(Decimal("50.0000"), Decimal("50"), Comparison.NUMERIC)
        assert values_equal(3, "3", Comparison.NUMERIC)

    def test_text_exact(self):
        assert not values_equal("Garage", "garage", Comparison.TEXT)


class TestChangedFields:
    def test_identical_copy_needs_nothing(self):
        schedule = _schedule()
        assert changed_fields(schedule, _expense_matching(schedule)) == []
        assert not expense_needs_update(schedule, _expense_matching(schedule))

    def test_stored_precision_is_not_drift(self):
        schedule = _schedule()
        expense = _expense_matching(schedule, subtotal=Decimal("50.0000"))
        assert not expense_needs_update(schedule, expense)

    def test_detects_each_changed_field(self):
        schedule = _schedule()
        expense = _expense_matching(schedule, where_done="Dealer", tax=None, kind_id=4)
        assert set(changed_fields(schedule, expense)) == {"where_done", "tax", "kind_id"}

    def test_template_covers_the_ten_fields(self):
        assert {f.expense_field for f in TEMPLATE_FIELDS} == {
            "subtotal", "tax", "fees", "total_price", "where_done",
            "comments", "kind_id", "cost_work", "cost_parts", "short_note",
        }
