"""
ORM model for expense schedule persistence.

Contract:
    ExpenseScheduleModel persists a recurring expense template together
    with its recurrence cursors and lifecycle status.  ``to_dto()`` /
    ``from_dto()`` convert to and from the frozen ``ExpenseSchedule``.

Architecture: expense_schedules/models.  Imports from expense_kernel.db only.

Invariants enforced:
    - ``status`` holds a ScheduleStatus value; COMPLETED rows are never
      reactivated by the engine.
    - ``(status, next_scheduled_at)`` is indexed for the due-schedule scan.
    - Datetimes are returned UTC-aware even on backends that drop tzinfo.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import SoftDeleteMixin, TrackedBase
from expense_kernel.domain.clock import ensure_utc

if TYPE_CHECKING:
    from expense_schedules.domain.types import ExpenseSchedule


class ExpenseScheduleModel(SoftDeleteMixin, TrackedBase):
    """Persistent expense schedule (one car per schedule)."""

    __tablename__ = "expense_schedules"

    __table_args__ = (
        Index("ix_expense_schedules_due", "status", "next_scheduled_at"),
        Index("ix_expense_schedules_account", "account_id"),
        Index("ix_expense_schedules_car", "car_id"),
    )

    account_id: Mapped[UUID] = mapped_column(nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    car_id: Mapped[UUID] = mapped_column(ForeignKey("cars.id"), nullable=False)
    kind_id: Mapped[int | None] = mapped_column(nullable=True)

    schedule_type: Mapped[str] = mapped_column(String(16), nullable=False)
    schedule_days: Mapped[str] = mapped_column(String(64), nullable=False)
    start_at: Mapped[datetime] = mapped_column(nullable=False)
    end_at: Mapped[datetime | None] = mapped_column(nullable=True)

    next_scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_added_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_created_expense_id: Mapped[UUID | None] = mapped_column(nullable=True)

    where_done: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cost_work: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_parts: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax: Mapped[Decimal | None] = mapped_column(nullable=True)
    fees: Mapped[Decimal | None] = mapped_column(nullable=True)
    subtotal: Mapped[Decimal | None] = mapped_column(nullable=True, default=Decimal("0"))
    total_price: Mapped[Decimal | None] = mapped_column(nullable=True, default=Decimal("0"))
    paid_in_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    short_note: Mapped[str | None] = mapped_column(String(128), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    def to_dto(self) -> ExpenseSchedule:
        from expense_schedules.domain.types import (
            ExpenseSchedule,
            ScheduleStatus,
            ScheduleType,
        )

        return ExpenseSchedule(
            schedule_id=self.id,
            account_id=self.account_id,
            user_id=self.user_id,
            car_id=self.car_id,
            schedule_type=ScheduleType(self.schedule_type),
            schedule_days=self.schedule_days,
            start_at=ensure_utc(self.start_at),
            end_at=ensure_utc(self.end_at),
            status=ScheduleStatus(self.status),
            next_scheduled_at=ensure_utc(self.next_scheduled_at),
            last_added_at=ensure_utc(self.last_added_at),
            last_created_expense_id=self.last_created_expense_id,
            kind_id=self.kind_id,
            where_done=self.where_done,
            cost_work=self.cost_work,
            cost_parts=self.cost_parts,
            tax=self.tax,
            fees=self.fees,
            subtotal=self.subtotal,
            total_price=self.total_price,
            paid_in_currency=self.paid_in_currency,
            short_note=self.short_note,
            comments=self.comments,
            removed_at=ensure_utc(self.removed_at),
            created_at=ensure_utc(self.created_at),
            updated_at=ensure_utc(self.updated_at),
            created_by=self.created_by_id,
            updated_by=self.updated_by_id,
        )

    @classmethod
    def from_dto(cls, dto: ExpenseSchedule, created_by_id: UUID) -> ExpenseScheduleModel:
        return cls(
            id=dto.schedule_id,
            account_id=dto.account_id,
            user_id=dto.user_id,
            car_id=dto.car_id,
            kind_id=dto.kind_id,
            schedule_type=dto.schedule_type.value,
            schedule_days=dto.schedule_days,
            start_at=dto.start_at,
            end_at=dto.end_at,
            next_scheduled_at=dto.next_scheduled_at,
            last_added_at=dto.last_added_at,
            last_created_expense_id=dto.last_created_expense_id,
            where_done=dto.where_done,
            cost_work=dto.cost_work,
            cost_parts=dto.cost_parts,
            tax=dto.tax,
            fees=dto.fees,
            subtotal=dto.subtotal,
            total_price=dto.total_price,
            paid_in_currency=dto.paid_in_currency,
            short_note=dto.short_note,
            comments=dto.comments,
            status=dto.status.value,
            removed_at=dto.removed_at,
            created_by_id=created_by_id,
            updated_by_id=None,
        )

    def __repr__(self) -> str:
        return f"<ExpenseSchedule {self.id} {self.schedule_type}:{self.schedule_days} ({self.status})>"
