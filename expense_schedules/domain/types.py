"""
expense_schedules.domain.types -- Pure frozen dataclasses for the schedule engine.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - All DTOs are frozen; services derive new snapshots with ``replace``.
    - Money fields are ``Decimal`` or ``None``; never floats.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class ScheduleType(str, Enum):
    """Recurrence shape of an expense schedule."""

    ONE_TIME = "one_time"  # schedule_days is a single ISO date
    WEEKLY = "weekly"  # ISO weekdays 1-7
    MONTHLY = "monthly"  # 1-31 or "last"
    YEARLY = "yearly"  # MM-DD


class ScheduleStatus(str, Enum):
    """Schedule lifecycle status.

    ACTIVE <-> PAUSED; ACTIVE -> COMPLETED.  COMPLETED is terminal.
    """

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ReconcileMode(str, Enum):
    """How desired dates are applied against existing generated expenses."""

    FULL = "full"  # create, update, and soft-delete
    CREATE_ONLY = "create_only"  # only fill missing dates


# =============================================================================
# Schedule DTOs
# =============================================================================


@dataclass(frozen=True)
class ActorContext:
    """Who is calling: the account scope and the acting user."""

    account_id: UUID
    user_id: UUID


@dataclass(frozen=True)
class ExpenseSchedule:
    """Immutable snapshot of an expense schedule row."""

    schedule_id: UUID
    account_id: UUID | None
    user_id: UUID | None
    car_id: UUID | None
    schedule_type: ScheduleType
    schedule_days: str
    start_at: datetime
    end_at: datetime | None = None
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    next_scheduled_at: datetime | None = None
    last_added_at: datetime | None = None
    last_created_expense_id: UUID | None = None
    kind_id: int | None = None
    where_done: str | None = None
    cost_work: Decimal | None = None
    cost_parts: Decimal | None = None
    tax: Decimal | None = None
    fees: Decimal | None = None
    subtotal: Decimal | None = None
    total_price: Decimal | None = None
    paid_in_currency: str | None = None
    short_note: str | None = None
    comments: str | None = None
    removed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: UUID | None = None
    updated_by: UUID | None = None

    def with_changes(self, **changes: Any) -> ExpenseSchedule:
        return replace(self, **changes)

    @property
    def missing_identity(self) -> list[str]:
        """Names of the identifiers needed to materialize expenses that are unset."""
        return [
            name
            for name, value in (
                ("account_id", self.account_id),
                ("car_id", self.car_id),
                ("user_id", self.user_id),
            )
            if value is None
        ]


@dataclass(frozen=True)
class GeneratedExpense:
    """Snapshot of a live expense previously generated from a schedule."""

    expense_id: UUID
    schedule_id: UUID
    when_done: datetime
    where_done: str | None = None
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    fees: Decimal | None = None
    total_price: Decimal | None = None
    cost_work: Decimal | None = None
    cost_parts: Decimal | None = None
    kind_id: int | None = None
    short_note: str | None = None
    comments: str | None = None


@dataclass(frozen=True)
class NewExpense:
    """Values for an expense row the reconciler is about to create."""

    account_id: UUID
    user_id: UUID
    car_id: UUID
    schedule_id: UUID
    when_done: datetime
    paid_in_currency: str
    home_currency: str
    where_done: str | None = None
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    fees: Decimal | None = None
    total_price: Decimal | None = None
    cost_work: Decimal | None = None
    cost_parts: Decimal | None = None
    kind_id: int | None = None
    short_note: str | None = None
    comments: str | None = None


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling one schedule against its generated expenses.

    ``error`` is set only when the reconciler refused to run; counts are
    then all zero and nothing was written.
    """

    added: int = 0
    updated: int = 0
    removed: int = 0
    skipped: int = 0
    created_dates: tuple[datetime, ...] = ()
    last_created_expense_id: UUID | None = None
    last_created_at: datetime | None = None
    home_currency: str | None = None
    error: str | None = None

    @property
    def changed(self) -> bool:
        return (self.added + self.updated + self.removed) > 0

    @property
    def refused(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class ScheduleErrorEntry:
    """One per-schedule failure recorded during a batch run."""

    schedule_id: UUID | None
    account_id: UUID | None
    code: str
    message: str


@dataclass(frozen=True)
class SideEffectSummary:
    """Counts from dispatching deduplicated side effects."""

    stats_updated_cars: int = 0
    stats_errors: int = 0
    service_intervals_updated: int = 0
    service_interval_errors: int = 0


@dataclass(frozen=True)
class BatchRunSummary:
    """Immutable result of one ``process_scheduled_expenses`` run."""

    processed_at: datetime
    processed_schedules: int = 0
    created_expenses: int = 0
    skipped_expenses: int = 0
    updated_schedules: int = 0
    completed_schedules: int = 0
    error_count: int = 0
    errors: tuple[ScheduleErrorEntry, ...] = ()
    has_more_to_process: bool = False
    stats_updated_cars: int = 0
    stats_errors: int = 0
    service_intervals_updated: int = 0
    service_interval_errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["processed_at"] = self.processed_at.isoformat()
        data["errors"] = [
            {
                "schedule_id": str(e.schedule_id) if e.schedule_id else None,
                "account_id": str(e.account_id) if e.account_id else None,
                "code": e.code,
                "message": e.message,
            }
            for e in self.errors
        ]
        return data


@dataclass(frozen=True)
class OperationResult:
    """Structured result of a user-facing schedule operation."""

    ok: bool
    message: str = ""
    code: str | None = None
    schedule: ExpenseSchedule | None = None
    schedules: tuple[ExpenseSchedule, ...] = ()
    reconcile: ReconcileResult | None = None
    side_effects: SideEffectSummary | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(
        cls,
        schedule: ExpenseSchedule | None,
        message: str = "",
        **kwargs: Any,
    ) -> OperationResult:
        return cls(ok=True, message=message, schedule=schedule, **kwargs)

    @classmethod
    def failure(cls, code: str, message: str, **kwargs: Any) -> OperationResult:
        return cls(ok=False, code=code, message=message, **kwargs)
