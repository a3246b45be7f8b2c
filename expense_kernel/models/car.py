"""
Module: expense_kernel.models.car
Responsibility: ORM persistence for the vehicles that expenses and schedules
    attach to.  The schedule engine only reads cars: ownership for access
    checks, and status / removal for the due-schedule query.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A car belongs to exactly one account.
    - A removed car (removed_at set) never has schedules processed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import SoftDeleteMixin, TrackedBase


class CarStatus(str, Enum):
    """Vehicle lifecycle status.

    Only ACTIVE cars accept scheduled expenses.
    """

    ACTIVE = "active"
    SOLD = "sold"
    ARCHIVED = "archived"


class CarModel(SoftDeleteMixin, TrackedBase):
    """
    A vehicle owned by an account.

    Non-goals:
        - Mileage, fuel, and statistics live in other services; the engine
          notifies them through collaborators instead of touching them here.
    """

    __tablename__ = "cars"

    __table_args__ = (
        Index("idx_car_account", "account_id"),
    )

    account_id: Mapped[UUID] = mapped_column(nullable=False)

    label: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=CarStatus.ACTIVE.value,
    )

    when_sold: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Car {self.id} ({self.status})>"
