"""
SideEffectCoordinator -- deduplicated downstream notifications.

Contract:
    Callers ``record()`` every (car, currency) and (car, kind) touched while
    materializing expenses; ``dispatch()`` then calls each collaborator once
    per distinct pair.  A failing call is logged and counted; it never
    propagates.

Non-goals:
    - Does NOT retry failed recalculations.
    - Does NOT run inside the caller's transaction; dispatch happens after
      the schedule transactions have committed.
"""

from __future__ import annotations

from uuid import UUID

from expense_kernel.logging_config import get_logger
from expense_schedules.domain.types import SideEffectSummary
from expense_schedules.services.collaborators import (
    CarStatsRecalculator,
    ServiceIntervalRecalculator,
)

logger = get_logger("schedules.side_effects")


class SideEffectBatch:
    """Insertion-ordered sets of affected (car, currency) and (car, kind) pairs."""

    def __init__(self) -> None:
        self._car_currencies: dict[tuple[UUID, str], None] = {}
        self._car_kinds: dict[tuple[UUID, int], None] = {}

    def record(self, car_id: UUID, currency: str, kind_id: int | None) -> None:
        self._car_currencies[(car_id, currency)] = None
        if kind_id is not None:
            self._car_kinds[(car_id, kind_id)] = None

    @property
    def car_currencies(self) -> list[tuple[UUID, str]]:
        return list(self._car_currencies)

    @property
    def car_kinds(self) -> list[tuple[UUID, int]]:
        return list(self._car_kinds)

    def __bool__(self) -> bool:
        return bool(self._car_currencies or self._car_kinds)


class SideEffectCoordinator:
    """Dispatches a ``SideEffectBatch`` to the statistics collaborators."""

    def __init__(
        self,
        car_stats: CarStatsRecalculator,
        service_intervals: ServiceIntervalRecalculator,
    ):
        self._car_stats = car_stats
        self._service_intervals = service_intervals

    def dispatch(self, batch: SideEffectBatch) -> SideEffectSummary:
        stats_updated = stats_errors = 0
        intervals_updated = interval_errors = 0

        for car_id, currency in batch.car_currencies:
            try:
                self._car_stats.recalculate_car_stats(car_id, currency)
                stats_updated += 1
            except Exception:
                stats_errors += 1
                logger.exception(
                    "car_stats_recalculation_failed",
                    extra={"car_id": str(car_id), "currency": currency},
                )

        for car_id, kind_id in batch.car_kinds:
            try:
                self._service_intervals.recalculate_service_interval_for_car_and_kind(
                    car_id, kind_id
                )
                intervals_updated += 1
            except Exception:
                interval_errors += 1
                logger.exception(
                    "service_interval_recalculation_failed",
                    extra={"car_id": str(car_id), "kind_id": kind_id},
                )

        if batch:
            logger.info(
                "side_effects_dispatched",
                extra={
                    "stats_updated_cars": stats_updated,
                    "stats_errors": stats_errors,
                    "service_intervals_updated": intervals_updated,
                    "service_interval_errors": interval_errors,
                },
            )

        return SideEffectSummary(
            stats_updated_cars=stats_updated,
            stats_errors=stats_errors,
            service_intervals_updated=intervals_updated,
            service_interval_errors=interval_errors,
        )
