"""
Module: expense_kernel.models.expense
Responsibility: ORM persistence for expense records.  Expenses are owned by
    the host application; the schedule engine creates, updates, and
    soft-deletes the ones it generated (rows carrying expense_schedule_id).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Expenses are never purged by the engine.  Removal sets removed_at and
      removed_by_id.
    - (expense_schedule_id, when_done) is indexed; the engine keeps at most
      one live row per schedule and calendar date.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import SoftDeleteMixin, TrackedBase


class ExpenseStatus(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class ExpenseModel(SoftDeleteMixin, TrackedBase):
    """
    A single vehicle expense.

    Guarantees:
        - Money columns are Numeric(19, 4); *_hc columns hold the amount in the
          user's home currency.
        - expense_schedule_id is None for manually entered expenses.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        Index("idx_expense_schedule_when", "expense_schedule_id", "when_done"),
        Index("idx_expense_car", "car_id"),
    )

    account_id: Mapped[UUID] = mapped_column(nullable=False)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    car_id: Mapped[UUID] = mapped_column(ForeignKey("cars.id"), nullable=False)
    expense_schedule_id: Mapped[UUID | None] = mapped_column(nullable=True)

    expense_type: Mapped[str] = mapped_column(String(16), nullable=False, default="expense")
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ExpenseStatus.ACTIVE.value
    )

    when_done: Mapped[datetime] = mapped_column(nullable=False)
    where_done: Mapped[str | None] = mapped_column(String(128), nullable=True)

    subtotal: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax: Mapped[Decimal | None] = mapped_column(nullable=True)
    fees: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_work: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_parts: Mapped[Decimal | None] = mapped_column(nullable=True)

    paid_in_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    home_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_price_in_hc: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_work_hc: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_parts_hc: Mapped[Decimal | None] = mapped_column(nullable=True)

    kind_id: Mapped[int | None] = mapped_column(nullable=True)
    short_note: Mapped[str | None] = mapped_column(String(128), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Expense {self.id} car={self.car_id} when={self.when_done}>"
