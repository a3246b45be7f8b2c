"""
ScheduleStore -- storage contract for schedules and their generated expenses.

Contract:
    Every method takes the caller's ``Session`` explicitly; the store never
    opens, commits, or rolls back a transaction.  Schedules are returned as
    frozen ``ExpenseSchedule`` snapshots, generated expenses as
    ``GeneratedExpense`` snapshots.

Architecture: expense_schedules/services.  Imports from expense_kernel.models,
    expense_schedules.models, and expense_schedules.domain.

Invariants enforced:
    - Removed schedules and removed expenses are invisible to every read.
    - ``list_due_schedules`` claims rows with ``FOR UPDATE OF
      expense_schedules SKIP LOCKED`` so concurrent claimers get disjoint
      sets (PostgreSQL; SQLite renders no lock clause).
    - Expenses are soft-deleted only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from expense_kernel.domain.clock import ensure_utc
from expense_kernel.logging_config import get_logger
from expense_kernel.models.car import CarModel, CarStatus
from expense_kernel.models.expense import ExpenseModel, ExpenseStatus
from expense_schedules.domain.types import (
    ExpenseSchedule,
    GeneratedExpense,
    NewExpense,
    ScheduleStatus,
)
from expense_schedules.models.schedule import ExpenseScheduleModel

logger = get_logger("schedules.store")

_ENUM_COLUMNS = ("schedule_type", "status")


def _to_generated(model: ExpenseModel) -> GeneratedExpense:
    return GeneratedExpense(
        expense_id=model.id,
        schedule_id=model.expense_schedule_id,
        when_done=ensure_utc(model.when_done),
        where_done=model.where_done,
        subtotal=model.subtotal,
        tax=model.tax,
        fees=model.fees,
        total_price=model.total_price,
        cost_work=model.cost_work,
        cost_parts=model.cost_parts,
        kind_id=model.kind_id,
        short_note=model.short_note,
        comments=model.comments,
    )


class ScheduleStore:
    """SQLAlchemy-backed persistence for the schedule engine."""

    # -------------------------------------------------------------------------
    # Schedules
    # -------------------------------------------------------------------------

    def _select_live(self, schedule_id: UUID):
        return select(ExpenseScheduleModel).where(
            ExpenseScheduleModel.id == schedule_id,
            ExpenseScheduleModel.removed_at.is_(None),
        )

    def get_schedule(
        self,
        session: Session,
        schedule_id: UUID,
        *,
        for_update: bool = False,
    ) -> ExpenseSchedule | None:
        """Live schedule by id; ``for_update`` takes a blocking row lock."""
        stmt = self._select_live(schedule_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = session.execute(stmt).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def add_schedule(
        self,
        session: Session,
        schedule: ExpenseSchedule,
        actor_id: UUID,
    ) -> ExpenseSchedule:
        model = ExpenseScheduleModel.from_dto(schedule, created_by_id=actor_id)
        session.add(model)
        session.flush()
        session.refresh(model)
        return model.to_dto()

    def update_schedule(
        self,
        session: Session,
        schedule_id: UUID,
        actor_id: UUID | None,
        **changes: Any,
    ) -> ExpenseSchedule:
        """
        Apply column changes to a live schedule and return the new snapshot.

        Raises:
            LookupError: if the schedule does not exist or is removed.
        """
        model = session.execute(self._select_live(schedule_id)).scalar_one_or_none()
        if model is None:
            raise LookupError(f"Expense schedule {schedule_id} not found")
        for name, value in changes.items():
            if name in _ENUM_COLUMNS and value is not None:
                value = value.value if hasattr(value, "value") else value
            setattr(model, name, value)
        model.touch(actor_id)
        session.flush()
        session.refresh(model)
        return model.to_dto()

    def _due_statement(
        self,
        as_of: datetime,
        today_start: datetime,
        cursor: UUID | None,
    ):
        stmt = (
            select(ExpenseScheduleModel)
            .join(CarModel, CarModel.id == ExpenseScheduleModel.car_id)
            .where(
                ExpenseScheduleModel.removed_at.is_(None),
                ExpenseScheduleModel.status == ScheduleStatus.ACTIVE.value,
                ExpenseScheduleModel.start_at <= as_of,
                or_(
                    ExpenseScheduleModel.end_at.is_(None),
                    ExpenseScheduleModel.end_at >= today_start,
                ),
                or_(
                    ExpenseScheduleModel.next_scheduled_at.is_(None),
                    ExpenseScheduleModel.next_scheduled_at <= as_of,
                ),
                CarModel.removed_at.is_(None),
                CarModel.status == CarStatus.ACTIVE.value,
            )
        )
        if cursor is not None:
            stmt = stmt.where(ExpenseScheduleModel.id > cursor)
        return stmt

    def list_due_schedules(
        self,
        session: Session,
        as_of: datetime,
        today_start: datetime,
        cursor: UUID | None,
        limit: int,
        *,
        skip_locked: bool = True,
    ) -> list[ExpenseSchedule]:
        """
        Claim up to ``limit`` due schedules with id greater than ``cursor``.

        Due means: ACTIVE, not removed, started by ``as_of``, ``end_at``
        unset or not before ``today_start``, ``next_scheduled_at`` unset or
        at / before ``as_of``, and attached to an ACTIVE, non-removed car.
        Ordered by id.
        """
        stmt = (
            self._due_statement(as_of, today_start, cursor)
            .order_by(ExpenseScheduleModel.id)
            .limit(limit)
        )
        if skip_locked:
            stmt = stmt.with_for_update(skip_locked=True, of=ExpenseScheduleModel)

        return [m.to_dto() for m in session.execute(stmt).scalars().all()]

    def has_due_schedules(
        self,
        session: Session,
        as_of: datetime,
        today_start: datetime,
        cursor: UUID | None,
    ) -> bool:
        """Whether any schedule past ``cursor`` is due.  Takes no locks."""
        stmt = self._due_statement(as_of, today_start, cursor).exists().select()
        return bool(session.execute(stmt).scalar())

    def list_schedules(
        self,
        session: Session,
        account_id: UUID,
        car_id: UUID | None = None,
    ) -> list[ExpenseSchedule]:
        """Live schedules of an account, optionally for one car; oldest start first."""
        stmt = select(ExpenseScheduleModel).where(
            ExpenseScheduleModel.account_id == account_id,
            ExpenseScheduleModel.removed_at.is_(None),
        )
        if car_id is not None:
            stmt = stmt.where(ExpenseScheduleModel.car_id == car_id)
        stmt = stmt.order_by(ExpenseScheduleModel.start_at, ExpenseScheduleModel.id)
        return [m.to_dto() for m in session.execute(stmt).scalars().all()]

    # -------------------------------------------------------------------------
    # Cars
    # -------------------------------------------------------------------------

    def get_car(self, session: Session, car_id: UUID) -> CarModel | None:
        return session.get(CarModel, car_id)

    # -------------------------------------------------------------------------
    # Generated expenses
    # -------------------------------------------------------------------------

    def list_generated_expenses(
        self,
        session: Session,
        schedule_id: UUID,
        account_id: UUID,
        date_range: tuple[datetime, datetime] | None = None,
        limit: int | None = None,
    ) -> list[GeneratedExpense]:
        """
        Live expenses generated by a schedule, oldest first.

        Args:
            date_range: Inclusive ``(start, end)`` bound on ``when_done``.
                None fetches every live record (up to ``limit``).
        """
        stmt = (
            select(ExpenseModel)
            .where(
                ExpenseModel.expense_schedule_id == schedule_id,
                ExpenseModel.account_id == account_id,
                ExpenseModel.removed_at.is_(None),
            )
            .order_by(ExpenseModel.when_done, ExpenseModel.id)
        )
        if date_range is not None:
            start, end = date_range
            stmt = stmt.where(ExpenseModel.when_done.between(start, end))
        if limit is not None:
            stmt = stmt.limit(limit)
        return [_to_generated(m) for m in session.execute(stmt).scalars().all()]

    def create_expense(
        self,
        session: Session,
        expense: NewExpense,
        actor_id: UUID,
    ) -> UUID:
        model = ExpenseModel(
            account_id=expense.account_id,
            user_id=expense.user_id,
            car_id=expense.car_id,
            expense_schedule_id=expense.schedule_id,
            when_done=expense.when_done,
            where_done=expense.where_done,
            subtotal=expense.subtotal,
            tax=expense.tax,
            fees=expense.fees,
            total_price=expense.total_price,
            cost_work=expense.cost_work,
            cost_parts=expense.cost_parts,
            paid_in_currency=expense.paid_in_currency,
            home_currency=expense.home_currency,
            total_price_in_hc=expense.total_price,
            cost_work_hc=expense.cost_work,
            cost_parts_hc=expense.cost_parts,
            kind_id=expense.kind_id,
            short_note=expense.short_note,
            comments=expense.comments,
            created_by_id=actor_id,
        )
        session.add(model)
        session.flush()
        return model.id

    def update_expense(
        self,
        session: Session,
        expense_id: UUID,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> None:
        """
        Overwrite template columns on a generated expense.

        Home-currency mirrors follow the amounts they mirror.
        """
        model = session.get(ExpenseModel, expense_id)
        if model is None or model.is_removed:
            raise LookupError(f"Expense {expense_id} not found")
        for name, value in changes.items():
            setattr(model, name, value)
        if "total_price" in changes:
            model.total_price_in_hc = changes["total_price"]
        if "cost_work" in changes:
            model.cost_work_hc = changes["cost_work"]
        if "cost_parts" in changes:
            model.cost_parts_hc = changes["cost_parts"]
        model.touch(actor_id)
        session.flush()

    def soft_delete_expense(
        self,
        session: Session,
        expense_id: UUID,
        actor_id: UUID,
        removed_at: datetime,
    ) -> None:
        model = session.get(ExpenseModel, expense_id)
        if model is None or model.is_removed:
            raise LookupError(f"Expense {expense_id} not found")
        model.mark_removed(actor_id, removed_at)
        model.status = ExpenseStatus.REMOVED.value
        model.touch(actor_id)
        session.flush()
