"""
expense_schedules.domain -- Pure types, recurrence math, and rules.

ZERO I/O.  All types are frozen dataclasses.
"""

from expense_schedules.domain.recurrence import RangeExpander, RecurrenceCalculator
from expense_schedules.domain.template import TEMPLATE_FIELDS, expense_needs_update
from expense_schedules.domain.types import (
    ActorContext,
    BatchRunSummary,
    ExpenseSchedule,
    GeneratedExpense,
    NewExpense,
    OperationResult,
    ReconcileMode,
    ReconcileResult,
    ScheduleErrorEntry,
    ScheduleStatus,
    ScheduleType,
    SideEffectSummary,
)

__all__ = [
    "ActorContext",
    "BatchRunSummary",
    "ExpenseSchedule",
    "GeneratedExpense",
    "NewExpense",
    "OperationResult",
    "RangeExpander",
    "RecurrenceCalculator",
    "ReconcileMode",
    "ReconcileResult",
    "ScheduleErrorEntry",
    "ScheduleStatus",
    "ScheduleType",
    "SideEffectSummary",
    "TEMPLATE_FIELDS",
    "expense_needs_update",
]
