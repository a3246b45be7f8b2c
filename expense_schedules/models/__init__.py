"""
expense_schedules.models -- ORM models for schedule persistence.

Architecture: expense_schedules/models. Imports from expense_kernel.db only.
"""

import expense_kernel.models  # noqa: F401  # cars table for the car_id foreign key
from expense_schedules.models.schedule import ExpenseScheduleModel

__all__ = [
    "ExpenseScheduleModel",
]
