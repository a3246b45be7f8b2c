"""
Declarative base and shared column sets for every ORM model.

Architecture: expense_kernel/db.  Imported by expense_kernel.models and
    expense_schedules.models; imports nothing from the engine above it.

Invariants enforced:
    - Primary keys are uuid4 values, stored as 36-character strings so the
      same schema runs on PostgreSQL and SQLite.
    - Python ``Decimal`` columns map to Numeric(19, 4); money is never float.
    - Every row records its creator; ``created_by_id`` is NOT NULL.
    - Soft-deleted rows keep their data; ``removed_at`` marks them.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as ``String(36)``; accepts UUIDs or their string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(19, 4),
        datetime: DateTime(timezone=True),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base carrying audit columns.

    ``created_at`` / ``updated_at`` are set by the database; ``updated_at``
    refreshes on every UPDATE.  ``touch()`` records who made the change.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def touch(self, actor_id: UUID | None) -> None:
        if actor_id is not None:
            self.updated_by_id = actor_id


class SoftDeleteMixin:
    """``removed_at`` / ``removed_by_id`` columns; rows are never purged."""

    removed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    removed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None

    def mark_removed(self, actor_id: UUID, when: datetime) -> None:
        self.removed_at = when
        self.removed_by_id = actor_id
