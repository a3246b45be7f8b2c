"""
expense_schedules.services -- Stateful services over the schedule store.
"""

from expense_schedules.services.lifecycle import ScheduleLifecycleManager
from expense_schedules.services.processor import BatchProcessor
from expense_schedules.services.reconciler import ScheduleReconciler
from expense_schedules.services.runner import ScheduleRunner
from expense_schedules.services.side_effects import SideEffectBatch, SideEffectCoordinator
from expense_schedules.services.store import ScheduleStore

__all__ = [
    "BatchProcessor",
    "ScheduleLifecycleManager",
    "ScheduleReconciler",
    "ScheduleRunner",
    "ScheduleStore",
    "SideEffectBatch",
    "SideEffectCoordinator",
]
