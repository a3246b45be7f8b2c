"""
Tests for the ``expense-schedules`` command-line entry point.

Runs ``main()`` in-process against a file-backed SQLite database.  The CLI
uses the system clock, so seeded schedules are placed relative to today.
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.db.engine import get_session_factory, reset_engine
from expense_kernel.models.car import CarModel
from expense_schedules.cli import main
from expense_schedules.domain.types import ExpenseSchedule, ScheduleType
from expense_schedules.services.store import ScheduleStore
from tests.conftest import TEST_ACTOR_ID


@pytest.fixture
def database_url(tmp_path):
    yield f"sqlite:///{tmp_path / 'expenses.db'}"
    reset_engine()


def _seed_daily_schedule(days_back: int) -> None:
    account_id = uuid4()
    today = datetime.now(timezone.utc).date()
    start = datetime.combine(today - timedelta(days=days_back), datetime.min.time(), timezone.utc)
    with get_session_factory()() as s:
        car = CarModel(account_id=account_id, label="CLI car", created_by_id=TEST_ACTOR_ID)
        s.add(car)
        s.flush()
        ScheduleStore().add_schedule(
            s,
            ExpenseSchedule(
                schedule_id=uuid4(),
                account_id=account_id,
                user_id=uuid4(),
                car_id=car.id,
                schedule_type=ScheduleType.WEEKLY,
                schedule_days="1,2,3,4,5,6,7",
                start_at=start,
                total_price=Decimal("12.50"),
                subtotal=Decimal("12.50"),
                paid_in_currency="USD",
            ),
            TEST_ACTOR_ID,
        )
        s.commit()


class TestInitDb:
    def test_creates_tables(self, database_url, capsys):
        assert main(["--database-url", database_url, "init-db"]) == 0
        assert "Tables created." in capsys.readouterr().out


class TestProcess:
    def test_prints_summary(self, database_url, capsys):
        assert main(["--database-url", database_url, "init-db"]) == 0
        _seed_daily_schedule(days_back=4)
        capsys.readouterr()

        assert main(["--database-url", database_url, "process", "--batch-size", "10"]) == 0

        summary = json.loads(capsys.readouterr().out)
        assert summary["processed_schedules"] == 1
        assert summary["created_expenses"] == 5
        assert summary["error_count"] == 0
        assert summary["has_more_to_process"] is False

    def test_second_run_is_noop(self, database_url, capsys):
        main(["--database-url", database_url, "init-db"])
        _seed_daily_schedule(days_back=2)
        main(["--database-url", database_url, "process"])
        capsys.readouterr()

        assert main(["--database-url", database_url, "process"]) == 0
        assert json.loads(capsys.readouterr().out)["created_expenses"] == 0

    def test_database_url_from_environment(self, database_url, monkeypatch, capsys):
        monkeypatch.setenv("DATABASE_URL", database_url)
        assert main(["init-db"]) == 0
        assert main(["process"]) == 0
        assert json.loads(capsys.readouterr().out.split("Tables created.\n", 1)[1])


class TestErrors:
    def test_missing_database_url(self, monkeypatch, capsys):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert main(["process"]) == 1
        assert "DATABASE_URL" in capsys.readouterr().err

    def test_missing_config_file(self, database_url, tmp_path):
        missing = tmp_path / "nope.yaml"
        assert main(["--database-url", database_url, "--config", str(missing), "process"]) == 1

    def test_invalid_config(self, database_url, tmp_path, capsys):
        config = tmp_path / "settings.yaml"
        config.write_text("expense_schedules:\n  bogus_key: 1\n")
        assert main(["--database-url", database_url, "--config", str(config), "process"]) == 1
        assert "bogus_key" in capsys.readouterr().err

    def test_valid_config_accepted(self, database_url, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text("expense_schedules:\n  default_batch_size: 5\n")
        main(["--database-url", database_url, "init-db"])
        assert main(["--database-url", database_url, "--config", str(config), "process"]) == 0

    def test_process_without_tables_fails(self, database_url, capsys):
        assert main(["--database-url", database_url, "process"]) == 1
        assert "ERROR" in capsys.readouterr().err

    def test_unknown_command_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["frobnicate"])
        assert exc_info.value.code == 2
