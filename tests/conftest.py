"""
Pytest fixtures for the expense schedule test suite.

Provides:
- In-memory SQLite sessions with every ORM table created
- A DeterministicClock pinned to Friday 2024-03-15 09:00 UTC
- Factories for cars and schedules
- Recording collaborators for side-effect assertions
- Captured structured logs

Environment Variables:
- DATABASE_URL: PostgreSQL URL for tests marked ``postgres``.  Those tests
  are skipped when it is unset or points at another backend.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from expense_kernel.db.base import Base
from expense_kernel.domain.clock import DeterministicClock
from expense_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from expense_kernel.models import import_all_orm_models
from expense_kernel.models.car import CarModel, CarStatus
from expense_schedules.config import ScheduleSettings
from expense_schedules.domain.types import (
    ActorContext,
    ExpenseSchedule,
    ScheduleStatus,
    ScheduleType,
)
from expense_schedules.orchestrator import ExpenseScheduleOrchestrator
from expense_schedules.services.store import ScheduleStore

# Friday
TEST_NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)
TEST_ACTOR_ID = UUID("00000000-0000-4000-8000-00000000a11c")


def utc(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config):
    """Declare the postgres marker."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def _postgres_url() -> str | None:
    url = os.environ.get("DATABASE_URL")
    if url and make_url(url).get_backend_name() == "postgresql":
        return url
    return None


def pytest_collection_modifyitems(config, items):
    if _postgres_url():
        return
    skip = pytest.mark.skip(reason="DATABASE_URL does not point at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def postgres_url():
    return _postgres_url()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """JSON logging on for the whole session, as in production."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Each test starts with an empty LogContext."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture expense_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, processor):
            processor.process_scheduled_expenses()
            logs = captured_logs()
            assert any(r["message"] == "batch_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("expense_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    import_all_orm_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def settings():
    return ScheduleSettings()


@pytest.fixture
def store():
    return ScheduleStore()


# =============================================================================
# Identity fixtures
# =============================================================================


@pytest.fixture
def account_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def context(account_id, user_id) -> ActorContext:
    return ActorContext(account_id=account_id, user_id=user_id)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_car(session_factory, account_id):
    """Insert a car and return its id."""

    def _make(
        *,
        account: UUID | None = None,
        status: CarStatus = CarStatus.ACTIVE,
        when_sold: datetime | None = None,
        removed_at: datetime | None = None,
    ) -> UUID:
        with session_factory() as s:
            car = CarModel(
                account_id=account or account_id,
                label="Test car",
                status=status.value,
                when_sold=when_sold,
                removed_at=removed_at,
                created_by_id=TEST_ACTOR_ID,
            )
            s.add(car)
            s.commit()
            return car.id

    return _make


@pytest.fixture
def car_id(make_car) -> UUID:
    return make_car()


@pytest.fixture
def make_schedule(session_factory, store, account_id, user_id, car_id):
    """Insert a schedule row directly (no validation) and return its snapshot."""

    def _make(**overrides) -> ExpenseSchedule:
        values = dict(
            schedule_id=uuid4(),
            account_id=account_id,
            user_id=user_id,
            car_id=car_id,
            kind_id=7,
            schedule_type=ScheduleType.WEEKLY,
            schedule_days="5",
            start_at=utc(2024, 3, 1, 0),
            status=ScheduleStatus.ACTIVE,
            where_done="Garage",
            cost_work=Decimal("40"),
            cost_parts=Decimal("10"),
            subtotal=Decimal("50"),
            total_price=Decimal("50"),
            paid_in_currency="USD",
            short_note="Wash",
        )
        values.update(overrides)
        with session_factory() as s:
            created = store.add_schedule(s, ExpenseSchedule(**values), TEST_ACTOR_ID)
            s.commit()
            return created

    return _make


# =============================================================================
# Collaborators
# =============================================================================


class RecordingCarStats:
    def __init__(self, fail: bool = False):
        self.calls: list[tuple[UUID, str]] = []
        self.fail = fail

    def recalculate_car_stats(self, car_id: UUID, currency: str) -> None:
        self.calls.append((car_id, currency))
        if self.fail:
            raise RuntimeError("stats service unavailable")


class RecordingServiceIntervals:
    def __init__(self, fail: bool = False):
        self.calls: list[tuple[UUID, int]] = []
        self.fail = fail

    def recalculate_service_interval_for_car_and_kind(self, car_id: UUID, kind_id: int) -> None:
        self.calls.append((car_id, kind_id))
        if self.fail:
            raise RuntimeError("interval service unavailable")


class FixedHomeCurrency:
    def __init__(self, currency: str | None):
        self.currency = currency

    def resolve_home_currency(self, user_id: UUID) -> str | None:
        return self.currency


@pytest.fixture
def car_stats():
    return RecordingCarStats()


@pytest.fixture
def service_intervals():
    return RecordingServiceIntervals()


@pytest.fixture
def orchestrator(session_factory, clock, settings, car_stats, service_intervals):
    return ExpenseScheduleOrchestrator.from_session_factory(
        session_factory,
        clock=clock,
        settings=settings,
        car_stats=car_stats,
        service_intervals=service_intervals,
    )


@pytest.fixture
def lifecycle(orchestrator):
    return orchestrator.lifecycle


@pytest.fixture
def processor(orchestrator):
    return orchestrator.processor
