"""
Template comparison between a schedule and the expenses it generated.

A schedule is a template: a fixed set of its fields is copied onto every
expense it materializes.  ``TEMPLATE_FIELDS`` lists those fields once, as
data, and drives both change detection and the update payload.

Architecture: expense_schedules/domain.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from expense_schedules.domain.types import ExpenseSchedule, GeneratedExpense


class Comparison(str, Enum):
    NUMERIC = "numeric"
    TEXT = "text"


@dataclass(frozen=True)
class TemplateField:
    schedule_field: str
    expense_field: str
    comparison: Comparison


TEMPLATE_FIELDS: tuple[TemplateField, ...] = (
    TemplateField("subtotal", "subtotal", Comparison.NUMERIC),
    TemplateField("tax", "tax", Comparison.NUMERIC),
    TemplateField("fees", "fees", Comparison.NUMERIC),
    TemplateField("total_price", "total_price", Comparison.NUMERIC),
    TemplateField("where_done", "where_done", Comparison.TEXT),
    TemplateField("comments", "comments", Comparison.TEXT),
    TemplateField("kind_id", "kind_id", Comparison.NUMERIC),
    TemplateField("cost_work", "cost_work", Comparison.NUMERIC),
    TemplateField("cost_parts", "cost_parts", Comparison.NUMERIC),
    TemplateField("short_note", "short_note", Comparison.TEXT),
)


def _as_decimal(value: Any) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def values_equal(left: Any, right: Any, comparison: Comparison) -> bool:
    """Null equals null; null never equals a value; numbers compare by value."""
    if left is None and right is None:
        return True
    if left is None or right is None:
        return False
    if comparison == Comparison.NUMERIC:
        left_num, right_num = _as_decimal(left), _as_decimal(right)
        if left_num is not None and right_num is not None:
            return left_num == right_num
    return str(left) == str(right)


def changed_fields(schedule: ExpenseSchedule, expense: GeneratedExpense) -> list[str]:
    """Expense field names whose value differs from the schedule template."""
    return [
        f.expense_field
        for f in TEMPLATE_FIELDS
        if not values_equal(
            getattr(expense, f.expense_field),
            getattr(schedule, f.schedule_field),
            f.comparison,
        )
    ]


def expense_needs_update(schedule: ExpenseSchedule, expense: GeneratedExpense) -> bool:
    return bool(changed_fields(schedule, expense))


def template_values(schedule: ExpenseSchedule) -> dict[str, Any]:
    """Expense column values for every template field, taken from the schedule."""
    return {f.expense_field: getattr(schedule, f.schedule_field) for f in TEMPLATE_FIELDS}
