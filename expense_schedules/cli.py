"""
Command-line entry point for the expense schedule engine.

Usage:
    expense-schedules --database-url sqlite:///expenses.db init-db
    expense-schedules --database-url postgresql://... process --batch-size 200

``--database-url`` falls back to the ``DATABASE_URL`` environment variable.
``process`` prints the run summary as JSON on stdout; logs go to stderr.

Exit codes:
    0  success (including runs that recorded per-schedule errors)
    1  configuration, connection, or claim failure
    2  usage error (argparse)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

import yaml
from sqlalchemy.exc import SQLAlchemyError

from expense_kernel.db.engine import create_tables, init_engine_from_url
from expense_kernel.exceptions import ExpenseKernelError
from expense_kernel.logging_config import configure_logging, get_logger
from expense_schedules.config import load_settings
from expense_schedules.orchestrator import ExpenseScheduleOrchestrator

logger = get_logger("schedules.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expense-schedules",
        description="Materialize recurring vehicle expenses from their schedules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="SQLAlchemy database URL (default: $DATABASE_URL).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML settings file (expense_schedules section).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for structured logs on stderr (default: INFO).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Process every due schedule once.")
    process.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Schedules claimed per page (clamped to max_batch_size).",
    )
    process.add_argument(
        "--max-schedules",
        type=int,
        default=None,
        help="Upper bound on schedules attempted in this run.",
    )

    sub.add_parser("init-db", help="Create the engine's tables.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(level=getattr(logging, args.log_level))

    if not args.database_url:
        print("ERROR: --database-url or DATABASE_URL is required", file=sys.stderr)
        return 1

    try:
        settings = load_settings(args.config)
    except (OSError, yaml.YAMLError, ExpenseKernelError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "init-db":
            init_engine_from_url(args.database_url)
            create_tables()
            print("Tables created.")
            return 0

        orchestrator = ExpenseScheduleOrchestrator.from_url(
            args.database_url, settings=settings
        )
        summary = orchestrator.processor.process_scheduled_expenses(
            batch_size=args.batch_size,
            max_schedules=args.max_schedules,
        )
    except (SQLAlchemyError, ExpenseKernelError) as e:
        logger.exception("cli_command_failed", extra={"command": args.command})
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(json.dumps(summary.to_dict(), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
