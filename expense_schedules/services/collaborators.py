"""
Collaborator contracts the schedule engine calls but does not implement.

Car statistics, service-interval projections, user profiles, and access
control belong to other services.  The engine depends only on these
Protocols; the orchestrator wires concrete implementations.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from expense_kernel.logging_config import get_logger
from expense_kernel.models.car import CarModel

logger = get_logger("schedules.collaborators")


@runtime_checkable
class CarStatsRecalculator(Protocol):
    def recalculate_car_stats(self, car_id: UUID, currency: str) -> None: ...


@runtime_checkable
class ServiceIntervalRecalculator(Protocol):
    def recalculate_service_interval_for_car_and_kind(
        self, car_id: UUID, kind_id: int
    ) -> None: ...


@runtime_checkable
class HomeCurrencyResolver(Protocol):
    def resolve_home_currency(self, user_id: UUID) -> str | None: ...


@runtime_checkable
class VehicleAccessPolicy(Protocol):
    def can_access_car(self, session: Session, account_id: UUID, car_id: UUID) -> bool: ...


class AccountOwnershipPolicy:
    """Default access policy: the car belongs to the account and is not removed."""

    def can_access_car(self, session: Session, account_id: UUID, car_id: UUID) -> bool:
        car = session.get(CarModel, car_id)
        return car is not None and car.account_id == account_id and car.removed_at is None


class NullCarStatsRecalculator:
    """Used when no statistics service is wired; records the request only."""

    def recalculate_car_stats(self, car_id: UUID, currency: str) -> None:
        logger.debug(
            "car_stats_recalculation_skipped",
            extra={"car_id": str(car_id), "currency": currency},
        )


class NullServiceIntervalRecalculator:
    """Used when no service-interval service is wired; records the request only."""

    def recalculate_service_interval_for_car_and_kind(self, car_id: UUID, kind_id: int) -> None:
        logger.debug(
            "service_interval_recalculation_skipped",
            extra={"car_id": str(car_id), "kind_id": kind_id},
        )


class NoHomeCurrency:
    """Resolver for deployments without user profiles; falls through to the default."""

    def resolve_home_currency(self, user_id: UUID) -> str | None:
        return None
