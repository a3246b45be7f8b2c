"""
Process-wide SQLAlchemy engine and session factory.

The command-line entry point and ``ScheduleOrchestrator.from_url`` call
``init_engine_from_url`` once; services then receive the session factory
and open their own transactions through ``session_scope``.

Backends:
    PostgreSQL is the production target.  Connections run at READ COMMITTED,
    which is what the ``FOR UPDATE SKIP LOCKED`` claim query expects.
    SQLite (file or ``sqlite://`` in memory) is for local runs and tests.
    It ignores row locks, so only one processor may use a SQLite database
    at a time.

Calling any accessor before ``init_engine_from_url`` raises RuntimeError.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from expense_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_NOT_READY = "Engine not initialized. Call init_engine_from_url() first."

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(backend: str, pool: dict[str, Any]) -> dict[str, Any]:
    if backend == "sqlite":
        # One shared connection, so an in-memory database survives across sessions.
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {**pool, "isolation_level": "READ COMMITTED"}


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous pair.

    Pool arguments apply to server backends only.
    """
    global _engine, _SessionFactory

    reset_engine()

    backend = make_url(database_url).get_backend_name()
    options = _engine_options(
        backend,
        {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": pool_pre_ping,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
        },
    )
    _engine = create_engine(database_url, echo=echo, **options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info("engine_initialized", extra={"dialect": backend, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_READY)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError(_NOT_READY)
    return _SessionFactory


def get_session() -> Session:
    """A new, unmanaged session; the caller commits and closes it."""
    return get_session_factory()()


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Iterator[Session]:
    """
    One transaction: commit on clean exit, roll back and re-raise otherwise.

    Args:
        session_factory: Defaults to the factory from init_engine_from_url().

    Usage:
        with session_scope(factory) as session:
            store.add_schedule(session, schedule, actor_id)
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    # Model modules register their tables on import.
    from expense_kernel.db.base import Base
    from expense_kernel.models import import_all_orm_models

    import_all_orm_models()
    return Base.metadata


def create_tables() -> None:
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables() -> None:
    """Drop every known table. Tests only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the pool and forget the engine."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


atexit.register(reset_engine)
