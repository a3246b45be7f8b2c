"""
ScheduleReconciler -- make stored expenses match a schedule's desired dates.

Contract:
    ``reconcile()`` takes the desired occurrence dates and the existing live
    generated expenses for the window (fetched once by the caller) and:

    - creates an expense for every desired date without one;
    - in FULL mode, updates expenses whose template fields drifted and
      soft-deletes expenses whose date is no longer desired (and extra
      rows sharing a date).

    Existing rows are keyed by calendar date, so a date never gets two live
    rows from one schedule.

Non-goals:
    - Does NOT open or commit transactions; all writes go through the
      caller's session.
    - Does NOT move schedule cursors; the result carries the candidates.

Failure modes:
    - Schedule without account / car / user -> refused, nothing written,
      ``ReconcileResult.error`` set.
    - Storage errors propagate to the caller, who rolls back.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock
from expense_kernel.logging_config import get_logger
from expense_schedules.domain.recurrence import as_date
from expense_schedules.domain.template import changed_fields, template_values
from expense_schedules.domain.types import (
    ExpenseSchedule,
    GeneratedExpense,
    NewExpense,
    ReconcileMode,
    ReconcileResult,
)
from expense_schedules.services.collaborators import HomeCurrencyResolver
from expense_schedules.services.store import ScheduleStore

logger = get_logger("schedules.reconciler")


class ScheduleReconciler:
    """Diffs desired dates against generated expenses and applies the difference."""

    def __init__(
        self,
        store: ScheduleStore,
        home_currency: HomeCurrencyResolver,
        clock: Clock,
        default_currency: str = "USD",
    ):
        self._store = store
        self._home_currency = home_currency
        self._clock = clock
        self._default_currency = default_currency

    def resolve_currency(self, schedule: ExpenseSchedule) -> str:
        """Schedule currency, else the user's home currency, else the default."""
        if schedule.paid_in_currency:
            return schedule.paid_in_currency
        if schedule.user_id is not None:
            home = self._home_currency.resolve_home_currency(schedule.user_id)
            if home:
                return home
        return self._default_currency

    def reconcile(
        self,
        session: Session,
        schedule: ExpenseSchedule,
        desired_dates: Sequence[datetime],
        mode: ReconcileMode,
        existing: Sequence[GeneratedExpense],
        actor_id: UUID | None = None,
    ) -> ReconcileResult:
        missing = schedule.missing_identity
        if missing:
            logger.warning(
                "reconcile_refused",
                extra={"schedule_id": str(schedule.schedule_id), "missing": missing},
            )
            return ReconcileResult(
                error=f"Invalid schedule data: missing {', '.join(missing)}"
            )

        actor = actor_id or schedule.user_id
        desired: dict[date, datetime] = {}
        for when in desired_dates:
            desired.setdefault(as_date(when), when)

        by_date: dict[date, GeneratedExpense] = {}
        duplicates: list[GeneratedExpense] = []
        for expense in existing:
            key = as_date(expense.when_done)
            if key in by_date:
                duplicates.append(expense)
            else:
                by_date[key] = expense

        added = updated = removed = skipped = 0
        created_dates: list[datetime] = []
        last_created_id: UUID | None = None
        last_created_at: datetime | None = None
        currency: str | None = None
        template = template_values(schedule)

        for key in sorted(desired):
            when = desired[key]
            current = by_date.get(key)

            if current is None:
                if currency is None:
                    currency = self.resolve_currency(schedule)
                expense_id = self._store.create_expense(
                    session,
                    NewExpense(
                        account_id=schedule.account_id,
                        user_id=schedule.user_id,
                        car_id=schedule.car_id,
                        schedule_id=schedule.schedule_id,
                        when_done=when,
                        paid_in_currency=currency,
                        home_currency=currency,
                        **template,
                    ),
                    actor,
                )
                added += 1
                created_dates.append(when)
                last_created_id = expense_id
                if last_created_at is None or when > last_created_at:
                    last_created_at = when
                continue

            if mode == ReconcileMode.FULL:
                drifted = changed_fields(schedule, current)
                if drifted:
                    self._store.update_expense(
                        session,
                        current.expense_id,
                        {name: template[name] for name in drifted},
                        actor,
                    )
                    updated += 1
                    continue
            skipped += 1

        if mode == ReconcileMode.FULL:
            now = self._clock.now_utc()
            orphans = [e for k, e in by_date.items() if k not in desired] + duplicates
            for expense in orphans:
                self._store.soft_delete_expense(session, expense.expense_id, actor, now)
                removed += 1

        result = ReconcileResult(
            added=added,
            updated=updated,
            removed=removed,
            skipped=skipped,
            created_dates=tuple(created_dates),
            last_created_expense_id=last_created_id,
            last_created_at=last_created_at,
            home_currency=currency,
        )
        logger.info(
            "schedule_reconciled",
            extra={
                "schedule_id": str(schedule.schedule_id),
                "mode": mode.value,
                "added": added,
                "updated": updated,
                "removed": removed,
                "skipped": skipped,
            },
        )
        return result
