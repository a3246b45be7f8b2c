"""
Tests for expense_kernel.db.engine -- module-level engine and session scope.

Uses in-memory SQLite through init_engine_from_url().
"""

from uuid import uuid4

import pytest
from sqlalchemy import inspect, select

from expense_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from expense_kernel.models.car import CarModel


@pytest.fixture
def sqlite_engine():
    reset_engine()
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


class TestEngineLifecycle:
    def test_uninitialized_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_create_tables_registers_every_model(self, sqlite_engine):
        tables = set(inspect(sqlite_engine).get_table_names())
        assert {"cars", "expenses", "expense_schedules"} <= tables

    def test_sqlite_is_not_postgres(self, sqlite_engine):
        assert not is_postgres()


class TestSessionScope:
    def test_commits_on_success(self, sqlite_engine):
        account = uuid4()
        with session_scope() as s:
            s.add(CarModel(account_id=account, label="Van", created_by_id=uuid4()))

        with session_scope() as s:
            cars = s.execute(select(CarModel).where(CarModel.account_id == account)).scalars().all()
        assert len(cars) == 1

    def test_rolls_back_on_error(self, sqlite_engine):
        account = uuid4()
        with pytest.raises(ValueError):
            with session_scope() as s:
                s.add(CarModel(account_id=account, label="Van", created_by_id=uuid4()))
                s.flush()
                raise ValueError("boom")

        with session_scope() as s:
            cars = s.execute(select(CarModel).where(CarModel.account_id == account)).scalars().all()
        assert cars == []
