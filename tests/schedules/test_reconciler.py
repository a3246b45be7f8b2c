"""
Tests for ScheduleReconciler -- diffing desired dates against stored expenses.

Uses in-memory SQLite with real ORM models; every test runs the reconciler
inside one session and inspects the rows it wrote.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.models.expense import ExpenseModel, ExpenseStatus
from expense_schedules.domain.types import NewExpense, ReconcileMode
from expense_schedules.services.collaborators import NoHomeCurrency
from expense_schedules.services.reconciler import ScheduleReconciler
from tests.conftest import TEST_ACTOR_ID, FixedHomeCurrency, utc


@pytest.fixture
def reconciler(store, clock):
    return ScheduleReconciler(store, NoHomeCurrency(), clock, default_currency="USD")


def _seed(store, session, schedule, when, **overrides):
    values = dict(
        account_id=schedule.account_id,
        user_id=schedule.user_id,
        car_id=schedule.car_id,
        schedule_id=schedule.schedule_id,
        when_done=when,
        paid_in_currency="USD",
        home_currency="USD",
        where_done=schedule.where_done,
        subtotal=schedule.subtotal,
        total_price=schedule.total_price,
        cost_work=schedule.cost_work,
        cost_parts=schedule.cost_parts,
        kind_id=schedule.kind_id,
        short_note=schedule.short_note,
    )
    values.update(overrides)
    return store.create_expense(session, NewExpense(**values), TEST_ACTOR_ID)


def _live(store, session, schedule):
    return store.list_generated_expenses(session, schedule.schedule_id, schedule.account_id)


class TestCreate:
    def test_creates_missing_dates(self, reconciler, store, session, make_schedule):
        schedule = make_schedule()
        desired = [utc(2024, 3, 1), utc(2024, 3, 8)]

        result = reconciler.reconcile(session, schedule, desired, ReconcileMode.FULL, [])

        assert (result.added, result.updated, result.removed, result.skipped) == (2, 0, 0, 0)
        assert result.created_dates == tuple(desired)
        assert result.last_created_at == utc(2024, 3, 8)
        assert result.home_currency == "USD"
        live = _live(store, session, schedule)
        assert [e.when_done for e in live] == desired
        assert result.last_created_expense_id == live[-1].expense_id

    def test_copies_template(self, reconciler, session, make_schedule):
        schedule = make_schedule(comments="Bi-weekly", fees=Decimal("2"))
        reconciler.reconcile(session, schedule, [utc(2024, 3, 1)], ReconcileMode.FULL, [])

        model = session.query(ExpenseModel).one()
        assert model.where_done == "Garage"
        assert model.comments == "Bi-weekly"
        assert model.fees == Decimal("2")
        assert model.kind_id == 7
        assert model.expense_schedule_id == schedule.schedule_id
        assert model.created_by_id == schedule.user_id

    def test_existing_date_is_skipped(self, reconciler, store, session, make_schedule):
        schedule = make_schedule()
        _seed(store, session, schedule, utc(2024, 3, 1))

        result = reconciler.reconcile(
            session,
            schedule,
            [utc(2024, 3, 1), utc(2024, 3, 8)],
            ReconcileMode.CREATE_ONLY,
            _live(store, session, schedule),
        )
        assert (result.added, result.skipped) == (1, 1)
        assert len(_live(store, session, schedule)) == 2

    def test_same_day_different_time_counts_as_existing(
        self, reconciler, store, session, make_schedule
    ):
        schedule = make_schedule()
        _seed(store, session, schedule, utc(2024, 3, 1, 8))

        result = reconciler.reconcile(
            session, schedule, [utc(2024, 3, 1)], ReconcileMode.CREATE_ONLY,
            _live(store, session, schedule),
        )
        assert result.added == 0


class TestFullSync:
    def test_updates_drifted_fields(self, reconciler, store, session, make_schedule):
        schedule = make_schedule()
        expense_id = _seed(store, session, schedule, utc(2024, 3, 1), where_done="Old shop")

        result = reconciler.reconcile(
            session, schedule, [utc(2024, 3, 1)], ReconcileMode.FULL,
            _live(store, session, schedule),
        )
        assert (result.added, result.updated, result.skipped) == (0, 1, 0)
        assert session.get(ExpenseModel, expense_id).where_done == "Garage"

    def test_create_only_leaves_drift_alone(self, reconciler, store, session, make_schedule):
        schedule = make_schedule()
        expense_id = _seed(store, session, schedule, utc(2024, 3, 1), where_done="Old shop")

        result = reconciler.reconcile(
            session, schedule, [utc(2024, 3, 1)], ReconcileMode.CREATE_ONLY,
            _live(store, session, schedule),
        )
        assert (result.updated, result.skipped) == (0, 1)
        assert session.get(ExpenseModel, expense_id).where_done == "Old shop"

    def test_removes_orphans_and_duplicates(self, reconciler, store, session, make_schedule):
        schedule = make_schedule()
        keep = _seed(store, session, schedule, utc(2024, 3, 1))
        duplicate = _seed(store, session, schedule, utc(2024, 3, 1, 18))
        orphan = _seed(store, session, schedule, utc(2024, 3, 2))

        result = reconciler.reconcile(
            session, schedule, [utc(2024, 3, 1)], ReconcileMode.FULL,
            _live(store, session, schedule),
        )
        assert (result.skipped, result.removed) == (1, 2)
        assert [e.expense_id for e in _live(store, session, schedule)] == [keep]
        for removed in (duplicate, orphan):
            model = session.get(ExpenseModel, removed)
            assert model.status == ExpenseStatus.REMOVED.value
            assert model.removed_at is not None

    def test_unchanged_is_not_changed(self, reconciler, store, session, make_schedule):
        schedule = make_schedule()
        _seed(store, session, schedule, utc(2024, 3, 1))
        result = reconciler.reconcile(
            session, schedule, [utc(2024, 3, 1)], ReconcileMode.FULL,
            _live(store, session, schedule),
        )
        assert not result.changed


class TestCurrency:
    def test_schedule_currency_wins(self, store, clock, make_schedule):
        reconciler = ScheduleReconciler(store, FixedHomeCurrency("GBP"), clock)
        assert reconciler.resolve_currency(make_schedule(paid_in_currency="EUR")) == "EUR"

    def test_home_currency_next(self, store, clock, make_schedule):
        reconciler = ScheduleReconciler(store, FixedHomeCurrency("GBP"), clock)
        assert reconciler.resolve_currency(make_schedule(paid_in_currency=None)) == "GBP"

    def test_default_last(self, store, clock, make_schedule):
        reconciler = ScheduleReconciler(store, FixedHomeCurrency(None), clock, default_currency="CAD")
        assert reconciler.resolve_currency(make_schedule(paid_in_currency=None)) == "CAD"


class TestRefusal:
    def test_missing_user_refused(self, reconciler, session, make_schedule, captured_logs):
        schedule = make_schedule(user_id=None)

        result = reconciler.reconcile(session, schedule, [utc(2024, 3, 1)], ReconcileMode.FULL, [])

        assert result.refused
        assert "user_id" in result.error
        assert result.added == 0
        assert session.query(ExpenseModel).count() == 0
        assert any(r["message"] == "reconcile_refused" for r in captured_logs())

    def test_missing_identity_from_snapshot(self, reconciler, session, make_schedule):
        schedule = make_schedule().with_changes(account_id=None, car_id=uuid4())
        assert reconciler.reconcile(session, schedule, [], ReconcileMode.FULL, []).refused
