"""
BatchProcessor -- idempotent, concurrency-safe materialization of due schedules.

Contract:
    ``process_scheduled_expenses()`` repeatedly
      1. claims a page of due schedules in a short transaction
         (``FOR UPDATE SKIP LOCKED``, committed immediately), then
      2. processes each claimed schedule in its own transaction, re-reading
         the row under ``FOR UPDATE`` and skipping it if it is no longer
         ACTIVE and due,
    until no due schedules remain or ``max_schedules`` have been attempted.
    Side effects are deduplicated over the whole run and dispatched once
    at the end.

Architecture: expense_schedules/services.  Sessions come from the injected
    factory; the store and reconciler receive them explicitly.

Invariants enforced:
    - Idempotency: dates that already have a live generated expense are
      skipped, so a second run with no edits creates nothing.
    - Never backfills a paused period: the range starts after
      ``last_added_at``.
    - One schedule's failure rolls back only that schedule.
    - All timestamps come from the injected Clock.

Failure modes:
    - Claim query failure -> ClaimFailedError propagates; per-schedule
      failures are recorded in the summary instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from expense_kernel.db.engine import session_scope
from expense_kernel.domain.clock import Clock, end_of_day, start_of_day
from expense_kernel.exceptions import (
    ClaimFailedError,
    ExpenseKernelError,
    InvalidScheduleDataError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_schedules.config import ScheduleSettings
from expense_schedules.domain import lifecycle as rules
from expense_schedules.domain.recurrence import RangeExpander
from expense_schedules.domain.types import (
    BatchRunSummary,
    ExpenseSchedule,
    ReconcileMode,
    ScheduleErrorEntry,
    ScheduleStatus,
    ScheduleType,
)
from expense_schedules.services.reconciler import ScheduleReconciler
from expense_schedules.services.side_effects import SideEffectBatch, SideEffectCoordinator
from expense_schedules.services.store import ScheduleStore

logger = get_logger("schedules.processor")


@dataclass(frozen=True)
class _ScheduleOutcome:
    created: int = 0
    skipped: int = 0
    updated: bool = False
    completed: bool = False
    home_currency: str | None = None


class BatchProcessor:
    """Processes every due schedule once per run.

    Non-goals:
        - Does NOT retry failed schedules within a run; the next run picks
          them up again because their cursors did not move.
        - Does NOT manage background threads -- that is ScheduleRunner.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store: ScheduleStore,
        reconciler: ScheduleReconciler,
        expander: RangeExpander,
        side_effects: SideEffectCoordinator,
        clock: Clock,
        settings: ScheduleSettings,
    ):
        self._session_factory = session_factory
        self._store = store
        self._reconciler = reconciler
        self._expander = expander
        self._calculator = expander.calculator
        self._side_effects = side_effects
        self._clock = clock
        self._settings = settings

    def process_scheduled_expenses(
        self,
        batch_size: int | None = None,
        max_schedules: int | None = None,
    ) -> BatchRunSummary:
        batch_size = self._settings.clamp_batch_size(batch_size)
        max_schedules = self._settings.clamp_max_schedules(max_schedules)

        now = self._clock.now_utc()
        today = now.date()
        as_of = end_of_day(today)
        today_start = start_of_day(today)
        run_id = str(uuid4())

        attempted = processed = created = skipped = 0
        updated_schedules = completed_schedules = 0
        errors: list[ScheduleErrorEntry] = []
        effects = SideEffectBatch()
        cursor = None

        with LogContext.bind(run_id=run_id):
            logger.info(
                "batch_run_started",
                extra={"batch_size": batch_size, "max_schedules": max_schedules},
            )

            while attempted < max_schedules:
                limit = min(batch_size, max_schedules - attempted)
                claimed = self._claim(as_of, today_start, cursor, limit)
                if not claimed:
                    break
                logger.info("batch_claimed", extra={"claimed": len(claimed)})

                for schedule in claimed:
                    attempted += 1
                    cursor = schedule.schedule_id
                    try:
                        outcome = self._process_one(schedule, now)
                    except Exception as exc:
                        code = exc.code if isinstance(exc, ExpenseKernelError) else "PROCESSING_FAILED"
                        errors.append(
                            ScheduleErrorEntry(
                                schedule_id=schedule.schedule_id,
                                account_id=schedule.account_id,
                                code=code,
                                message=str(exc) or type(exc).__name__,
                            )
                        )
                        logger.exception(
                            "schedule_processing_failed",
                            extra={
                                "schedule_id": str(schedule.schedule_id),
                                "account_id": str(schedule.account_id),
                            },
                        )
                        continue

                    if outcome is None:
                        continue
                    processed += 1
                    created += outcome.created
                    skipped += outcome.skipped
                    if outcome.updated:
                        updated_schedules += 1
                    if outcome.completed:
                        completed_schedules += 1
                    if outcome.created > 0:
                        effects.record(
                            schedule.car_id, outcome.home_currency, schedule.kind_id
                        )

                if len(claimed) < limit:
                    break

            has_more = attempted >= max_schedules and self._more_due(as_of, today_start, cursor)
            side_effects = self._side_effects.dispatch(effects)

            summary = BatchRunSummary(
                processed_at=now,
                processed_schedules=processed,
                created_expenses=created,
                skipped_expenses=skipped,
                updated_schedules=updated_schedules,
                completed_schedules=completed_schedules,
                error_count=len(errors),
                errors=tuple(errors[: self._settings.max_errors_in_response]),
                has_more_to_process=has_more,
                stats_updated_cars=side_effects.stats_updated_cars,
                stats_errors=side_effects.stats_errors,
                service_intervals_updated=side_effects.service_intervals_updated,
                service_interval_errors=side_effects.service_interval_errors,
            )
            logger.info(
                "batch_run_completed",
                extra={
                    "processed_schedules": processed,
                    "created_expenses": created,
                    "skipped_expenses": skipped,
                    "completed_schedules": completed_schedules,
                    "error_count": len(errors),
                    "has_more_to_process": has_more,
                },
            )
            return summary

    # -------------------------------------------------------------------------
    # Phase 1: claim
    # -------------------------------------------------------------------------

    def _claim(self, as_of, today_start, cursor, limit) -> list[ExpenseSchedule]:
        try:
            with session_scope(self._session_factory) as session:
                return self._store.list_due_schedules(
                    session, as_of, today_start, cursor, limit, skip_locked=True
                )
        except SQLAlchemyError as exc:
            raise ClaimFailedError(str(exc)) from exc

    def _more_due(self, as_of, today_start, cursor) -> bool:
        """Lookahead once the run cap is hit; an unreadable answer counts as more."""
        try:
            with session_scope(self._session_factory) as session:
                return self._store.has_due_schedules(session, as_of, today_start, cursor)
        except SQLAlchemyError:
            logger.warning("due_lookahead_failed", exc_info=True)
            return True

    # -------------------------------------------------------------------------
    # Phase 2: per-schedule transaction
    # -------------------------------------------------------------------------

    def _process_one(self, claimed: ExpenseSchedule, now: datetime) -> _ScheduleOutcome | None:
        session = self._session_factory()
        try:
            with LogContext.bind(schedule_id=claimed.schedule_id, account_id=claimed.account_id):
                outcome = self._materialize(session, claimed.schedule_id, now)
            session.commit()
            return outcome
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _materialize(self, session: Session, schedule_id, now: datetime) -> _ScheduleOutcome | None:
        today = now.date()
        schedule = self._store.get_schedule(session, schedule_id, for_update=True)
        if (
            schedule is None
            or schedule.status != ScheduleStatus.ACTIVE
            or (
                schedule.next_scheduled_at is not None
                and schedule.next_scheduled_at > end_of_day(today)
            )
        ):
            # Handled by a concurrent run_now or another processor since the claim.
            logger.info("schedule_no_longer_due", extra={"schedule_id": str(schedule_id)})
            return None

        last_day = rules.effective_end(schedule.end_at, today)
        reference = schedule.last_added_at or (schedule.start_at - timedelta(days=1))
        desired = self._expander.occurrences_in_range(
            schedule.schedule_type,
            schedule.schedule_days,
            schedule.start_at,
            last_day,
            after_date=reference,
        )

        next_at = self._calculator.next_occurrence(
            schedule.schedule_type,
            schedule.schedule_days,
            schedule.start_at,
            schedule.end_at,
            today,
        )

        if not desired:
            completed = rules.is_exhausted(
                schedule.schedule_type,
                next_at,
                schedule.end_at,
                today,
                materialized=schedule.last_added_at is not None,
            )
            needs_update = next_at != schedule.next_scheduled_at or completed
            if needs_update:
                changes = {"next_scheduled_at": next_at}
                if completed:
                    changes["status"] = ScheduleStatus.COMPLETED
                self._store.update_schedule(session, schedule.schedule_id, None, **changes)
            return _ScheduleOutcome(updated=needs_update, completed=completed)

        existing = self._store.list_generated_expenses(
            session,
            schedule.schedule_id,
            schedule.account_id,
            date_range=(start_of_day(desired[0].date()), end_of_day(desired[-1].date())),
        )
        outcome = self._reconciler.reconcile(
            session, schedule, desired, ReconcileMode.CREATE_ONLY, existing
        )
        if outcome.refused:
            raise InvalidScheduleDataError(
                str(schedule.schedule_id), schedule.missing_identity
            )

        completed = rules.is_exhausted(
            schedule.schedule_type,
            next_at,
            schedule.end_at,
            today,
            materialized=schedule.schedule_type == ScheduleType.ONE_TIME,
        )
        changes = {
            "last_added_at": rules.advance_cursor(schedule.last_added_at, outcome.last_created_at),
            "next_scheduled_at": next_at,
            "last_created_expense_id": (
                outcome.last_created_expense_id or schedule.last_created_expense_id
            ),
        }
        if completed:
            changes["status"] = ScheduleStatus.COMPLETED
        self._store.update_schedule(session, schedule.schedule_id, None, **changes)

        logger.info(
            "schedule_processed",
            extra={
                "schedule_id": str(schedule.schedule_id),
                "created_expenses": outcome.added,
                "skipped_expenses": outcome.skipped,
                "schedule_completed": completed,
            },
        )
        return _ScheduleOutcome(
            created=outcome.added,
            skipped=outcome.skipped,
            updated=True,
            completed=completed,
            home_currency=outcome.home_currency,
        )
