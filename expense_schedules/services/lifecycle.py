"""
ScheduleLifecycleManager -- user-facing schedule operations.

Contract:
    ``create_schedule``, ``update_schedule``, ``get_schedule``,
    ``list_schedules``, ``pause``, ``resume``, and ``run_now`` each run in
    one transaction opened from the injected session factory and return an
    ``OperationResult``.  Typed engine errors become
    ``OperationResult(ok=False, code=...)``; anything else is rolled back
    and re-raised.

Architecture: expense_schedules/services.  Imports from expense_schedules.domain,
    the store, the reconciler, and the side-effect coordinator.

Invariants enforced:
    - Missing, removed, and inaccessible schedules all fail the same way
      ("Expense schedule not found").
    - ``last_added_at`` never moves backward.
    - Resume never backfills the paused period.
    - Every mutating operation locks the schedule row (``SELECT ... FOR
      UPDATE``), which serializes it against the batch processor's
      per-schedule transaction.
    - Side effects are dispatched after commit and never fail the operation.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from expense_kernel.domain.clock import Clock, end_of_day, start_of_day
from expense_kernel.exceptions import (
    ExpenseKernelError,
    InvalidScheduleDataError,
    NoFutureOccurrenceError,
    NoScheduledDatesError,
    ScheduleNotFoundError,
    ScheduleValidationError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.car import CarStatus
from expense_schedules.config import ScheduleSettings
from expense_schedules.domain import lifecycle as rules
from expense_schedules.domain.recurrence import RangeExpander
from expense_schedules.domain.types import (
    ActorContext,
    ExpenseSchedule,
    OperationResult,
    ReconcileMode,
    ScheduleStatus,
)
from expense_schedules.domain.validation import (
    MONEY_FIELDS,
    compute_totals,
    normalize_schedule_input,
    validate_schedule,
)
from expense_schedules.services.collaborators import VehicleAccessPolicy
from expense_schedules.services.reconciler import ScheduleReconciler
from expense_schedules.services.side_effects import SideEffectBatch, SideEffectCoordinator
from expense_schedules.services.store import ScheduleStore

logger = get_logger("schedules.lifecycle")

_RECURRENCE_FIELDS = ("schedule_type", "schedule_days", "start_at", "end_at")

Outcome = tuple[OperationResult, SideEffectBatch | None]


class ScheduleLifecycleManager:
    """User operations on expense schedules.

    Non-goals:
        - Does NOT authenticate callers; ``ActorContext`` is trusted.
        - Does NOT process due schedules in bulk -- that is BatchProcessor.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store: ScheduleStore,
        reconciler: ScheduleReconciler,
        expander: RangeExpander,
        side_effects: SideEffectCoordinator,
        access_policy: VehicleAccessPolicy,
        clock: Clock,
        settings: ScheduleSettings,
    ):
        self._session_factory = session_factory
        self._store = store
        self._reconciler = reconciler
        self._expander = expander
        self._calculator = expander.calculator
        self._side_effects = side_effects
        self._access = access_policy
        self._clock = clock
        self._settings = settings

    # -------------------------------------------------------------------------
    # Transaction wrapper
    # -------------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        context: ActorContext,
        schedule_id: UUID | None,
        action: Callable[[Session], Outcome],
    ) -> OperationResult:
        session = self._session_factory()
        with LogContext.bind(
            account_id=context.account_id,
            user_id=context.user_id,
            schedule_id=schedule_id,
        ):
            try:
                result, effects = action(session)
                session.commit()
            except ExpenseKernelError as exc:
                session.rollback()
                logger.info(
                    "schedule_operation_rejected",
                    extra={"operation": operation, "code": exc.code, "reason": str(exc)},
                )
                return OperationResult.failure(exc.code, str(exc))
            except Exception:
                session.rollback()
                logger.exception("schedule_operation_failed", extra={"operation": operation})
                raise
            finally:
                session.close()

            if effects:
                result = replace(result, side_effects=self._side_effects.dispatch(effects))
            logger.info("schedule_operation_completed", extra={"operation": operation})
            return result

    def _load(
        self,
        session: Session,
        context: ActorContext,
        schedule_id: UUID,
        *,
        for_update: bool = True,
    ) -> ExpenseSchedule:
        schedule = self._store.get_schedule(session, schedule_id, for_update=for_update)
        if (
            schedule is None
            or schedule.account_id != context.account_id
            or schedule.car_id is None
            or not self._access.can_access_car(session, context.account_id, schedule.car_id)
        ):
            raise ScheduleNotFoundError(str(schedule_id))
        return schedule

    def _check_car(self, session: Session, context: ActorContext, car_id: UUID) -> None:
        car = self._store.get_car(session, car_id)
        if car is None or car.account_id != context.account_id:
            raise ScheduleValidationError("car_id", "Car not found")
        if car.removed_at is not None:
            raise ScheduleValidationError("car_id", "Cannot create schedule for a removed car")
        if car.when_sold is not None or car.status == CarStatus.SOLD.value:
            raise ScheduleValidationError("car_id", "Cannot create schedule for a sold car")

    # -------------------------------------------------------------------------
    # Create / update / read
    # -------------------------------------------------------------------------

    def create_schedule(
        self,
        context: ActorContext,
        params: Mapping[str, Any],
    ) -> OperationResult:
        """Validate input, fill totals, compute the first occurrence, and insert ACTIVE."""

        def action(session: Session) -> Outcome:
            values = normalize_schedule_input(params, partial=False)
            self._check_car(session, context, values["car_id"])
            validate_schedule(
                values["schedule_type"],
                values["schedule_days"],
                values["start_at"],
                values.get("end_at"),
                self._clock.today(),
            )
            subtotal, total_price = compute_totals(
                *(values.get(name) for name in MONEY_FIELDS)
            )
            next_at = self._calculator.next_occurrence(
                values["schedule_type"],
                values["schedule_days"],
                values["start_at"],
                values.get("end_at"),
                values["start_at"] - timedelta(days=1),
            )
            draft = ExpenseSchedule(
                schedule_id=uuid4(),
                account_id=context.account_id,
                user_id=context.user_id,
                car_id=values["car_id"],
                kind_id=values["kind_id"],
                schedule_type=values["schedule_type"],
                schedule_days=values["schedule_days"],
                start_at=values["start_at"],
                end_at=values.get("end_at"),
                status=ScheduleStatus.ACTIVE,
                next_scheduled_at=next_at,
                where_done=values.get("where_done"),
                cost_work=values.get("cost_work"),
                cost_parts=values.get("cost_parts"),
                tax=values.get("tax"),
                fees=values.get("fees"),
                subtotal=subtotal,
                total_price=total_price,
                paid_in_currency=values.get("paid_in_currency"),
                short_note=values.get("short_note"),
                comments=values.get("comments"),
            )
            created = self._store.add_schedule(session, draft, context.user_id)
            logger.info(
                "schedule_created",
                extra={
                    "schedule_id": str(created.schedule_id),
                    "schedule_type": created.schedule_type.value,
                    "next_scheduled_at": created.next_scheduled_at,
                },
            )
            return OperationResult.success(created, "Expense schedule created"), None

        return self._execute("create_schedule", context, None, action)

    def update_schedule(
        self,
        context: ActorContext,
        schedule_id: UUID,
        params: Mapping[str, Any],
    ) -> OperationResult:
        """
        Apply a partial edit.

        ``next_scheduled_at`` is recomputed when a recurrence field changes.
        Existing generated expenses are not touched; a full ``run_now``
        brings them in line.
        """

        def action(session: Session) -> Outcome:
            current = self._load(session, context, schedule_id)
            values = normalize_schedule_input(params, partial=True)

            if "car_id" in values and values["car_id"] != current.car_id:
                self._check_car(session, context, values["car_id"])

            merged = {
                name: values.get(name, getattr(current, name)) for name in _RECURRENCE_FIELDS
            }
            recurrence_changed = any(
                name in values and values[name] != getattr(current, name)
                for name in _RECURRENCE_FIELDS
            )
            validate_schedule(
                merged["schedule_type"],
                merged["schedule_days"],
                merged["start_at"],
                merged["end_at"],
                self._clock.today(),
                check_one_time_past=(
                    "schedule_type" in values or "schedule_days" in values
                ),
            )

            changes: dict[str, Any] = dict(values)
            if any(name in values for name in MONEY_FIELDS):
                money = {
                    name: values.get(name, getattr(current, name)) for name in MONEY_FIELDS
                }
                # Totals follow their parts unless given explicitly in this edit.
                if "subtotal" not in values:
                    money["subtotal"] = None
                if "total_price" not in values:
                    money["total_price"] = None
                changes["subtotal"], changes["total_price"] = compute_totals(
                    *(money[name] for name in MONEY_FIELDS)
                )

            if recurrence_changed:
                reference = current.last_added_at or (merged["start_at"] - timedelta(days=1))
                changes["next_scheduled_at"] = self._calculator.next_occurrence(
                    merged["schedule_type"],
                    merged["schedule_days"],
                    merged["start_at"],
                    merged["end_at"],
                    reference,
                )

            updated = self._store.update_schedule(
                session, current.schedule_id, context.user_id, **changes
            )
            return OperationResult.success(updated, "Expense schedule updated"), None

        return self._execute("update_schedule", context, schedule_id, action)

    def get_schedule(self, context: ActorContext, schedule_id: UUID) -> OperationResult:
        def action(session: Session) -> Outcome:
            schedule = self._load(session, context, schedule_id, for_update=False)
            return OperationResult.success(schedule), None

        return self._execute("get_schedule", context, schedule_id, action)

    def list_schedules(
        self, context: ActorContext, car_id: UUID | None = None
    ) -> OperationResult:
        """
        Live schedules of the caller's account, optionally for one car.

        Schedules on cars the caller cannot access are left out; an
        inaccessible ``car_id`` yields an empty list rather than an error.
        """

        def action(session: Session) -> Outcome:
            schedules = self._store.list_schedules(session, context.account_id, car_id)
            allowed: dict[UUID, bool] = {}
            for schedule in schedules:
                if schedule.car_id is not None and schedule.car_id not in allowed:
                    allowed[schedule.car_id] = self._access.can_access_car(
                        session, context.account_id, schedule.car_id
                    )
            visible = tuple(s for s in schedules if allowed.get(s.car_id, False))
            return OperationResult.success(None, schedules=visible), None

        return self._execute("list_schedules", context, None, action)

    # -------------------------------------------------------------------------
    # Pause / resume
    # -------------------------------------------------------------------------

    def pause(self, context: ActorContext, schedule_id: UUID) -> OperationResult:
        """ACTIVE -> PAUSED.  Cursors are left untouched."""

        def action(session: Session) -> Outcome:
            schedule = self._load(session, context, schedule_id)
            rules.check_can_pause(schedule)
            updated = self._store.update_schedule(
                session, schedule.schedule_id, context.user_id,
                status=ScheduleStatus.PAUSED,
            )
            return OperationResult.success(updated, "Expense schedule paused"), None

        return self._execute("pause", context, schedule_id, action)

    def resume(self, context: ActorContext, schedule_id: UUID) -> OperationResult:
        """
        PAUSED -> ACTIVE without backfilling the paused period.

        ``last_added_at`` becomes max(last_added_at, yesterday) and the next
        occurrence is searched from there.
        """

        def action(session: Session) -> Outcome:
            schedule = self._load(session, context, schedule_id)
            today = self._clock.today()
            rules.check_can_resume(schedule, today)

            cursor = rules.resume_cursor(schedule.last_added_at, today)
            next_at = self._calculator.next_occurrence(
                schedule.schedule_type,
                schedule.schedule_days,
                schedule.start_at,
                schedule.end_at,
                cursor,
            )
            if next_at is None:
                raise NoFutureOccurrenceError(str(schedule.schedule_id))

            updated = self._store.update_schedule(
                session, schedule.schedule_id, context.user_id,
                status=ScheduleStatus.ACTIVE,
                last_added_at=cursor,
                next_scheduled_at=next_at,
            )
            return OperationResult.success(updated, "Expense schedule resumed"), None

        return self._execute("resume", context, schedule_id, action)

    # -------------------------------------------------------------------------
    # Manual run
    # -------------------------------------------------------------------------

    def run_now(
        self,
        context: ActorContext,
        schedule_id: UUID,
        skip_paused_period: bool = False,
    ) -> OperationResult:
        """
        Materialize a schedule immediately.

        Full sync (default): every occurrence from ``start_at`` through
        min(``end_at``, today) is created or brought up to date, and live
        generated expenses outside that set are soft-deleted.

        ``skip_paused_period``: only today's occurrence is created (if any)
        and ``last_added_at`` jumps to it.  Nothing is updated or removed.

        A PAUSED schedule stays PAUSED; a ONE_TIME schedule completes.
        """

        def action(session: Session) -> Outcome:
            schedule = self._load(session, context, schedule_id)
            today = self._clock.today()
            rules.check_can_run(schedule, today)
            if schedule.missing_identity:
                raise InvalidScheduleDataError(
                    str(schedule.schedule_id), schedule.missing_identity
                )

            last_day = rules.effective_end(schedule.end_at, today)
            if skip_paused_period:
                mode = ReconcileMode.CREATE_ONLY
                desired = self._expander.occurrences_in_range(
                    schedule.schedule_type, schedule.schedule_days, today, last_day
                )
                existing = self._store.list_generated_expenses(
                    session,
                    schedule.schedule_id,
                    schedule.account_id,
                    date_range=(start_of_day(today), end_of_day(today)),
                )
            else:
                mode = ReconcileMode.FULL
                desired = self._expander.occurrences_in_range(
                    schedule.schedule_type,
                    schedule.schedule_days,
                    schedule.start_at,
                    last_day,
                )
                existing = self._store.list_generated_expenses(
                    session,
                    schedule.schedule_id,
                    schedule.account_id,
                    limit=self._settings.max_expenses_per_schedule,
                )

            # With no desired dates every existing record would be an orphan.
            if not desired:
                if mode == ReconcileMode.CREATE_ONLY or not existing:
                    raise NoScheduledDatesError(
                        str(schedule.schedule_id),
                        "Today does not match any scheduled date"
                        if skip_paused_period
                        else "No scheduled dates found within the valid range",
                    )

            outcome = self._reconciler.reconcile(
                session, schedule, desired, mode, existing, actor_id=context.user_id
            )
            if outcome.refused:
                raise InvalidScheduleDataError(
                    str(schedule.schedule_id), schedule.missing_identity
                )

            last_added_at = rules.advance_cursor(schedule.last_added_at, outcome.last_created_at)
            if skip_paused_period and desired:
                last_added_at = rules.advance_cursor(last_added_at, desired[-1])

            next_at = self._calculator.next_occurrence(
                schedule.schedule_type,
                schedule.schedule_days,
                schedule.start_at,
                schedule.end_at,
                today,
            )
            status = schedule.status
            if rules.is_exhausted(
                schedule.schedule_type, next_at, schedule.end_at, today, materialized=True
            ):
                status = ScheduleStatus.COMPLETED

            updated = self._store.update_schedule(
                session, schedule.schedule_id, context.user_id,
                last_added_at=last_added_at,
                next_scheduled_at=next_at,
                last_created_expense_id=(
                    outcome.last_created_expense_id or schedule.last_created_expense_id
                ),
                status=status,
            )

            effects = None
            if outcome.changed:
                effects = SideEffectBatch()
                effects.record(
                    schedule.car_id,
                    outcome.home_currency or self._reconciler.resolve_currency(schedule),
                    schedule.kind_id,
                )
                message = "Expense schedule processed"
            else:
                message = "All scheduled expenses already exist and are up to date"

            return (
                OperationResult.success(
                    updated,
                    message,
                    reconcile=outcome,
                    details={
                        "added": outcome.added,
                        "updated": outcome.updated,
                        "removed": outcome.removed,
                    },
                ),
                effects,
            )

        return self._execute("run_now", context, schedule_id, action)
