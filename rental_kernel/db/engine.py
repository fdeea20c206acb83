"""
Module: rental_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management
    and transactional scope utilities.  The single point of database
    connection configuration.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/ or outer packages.

Invariants enforced:
    - PostgreSQL runs READ COMMITTED with a pre-pinged QueuePool.
    - SQLite connections are configured so that SAVEPOINTs nest inside a
      real transaction (pysqlite otherwise commits on RELEASE).

Failure modes:
    - RuntimeError if get_engine/get_session/session_scope is called before
      init_engine_from_url().

Audit relevance:
    ``session_scope()`` gives atomic commit-or-rollback around a whole batch
    run; per-obligation SAVEPOINTs nest inside it.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from rental_kernel.db.immutability import register_immutability_listeners
from rental_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT/RELEASE nest correctly."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_database_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build an Engine for PostgreSQL or SQLite without touching the module
    engine.  Registers the ORM immutability listeners.

    In-memory SQLite URLs share one connection (StaticPool) so every session
    sees the same database.
    """
    register_immutability_listeners()
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Initialize the module-level engine and session factory.

    A second call replaces the first.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = create_database_engine(database_url, echo=echo, **pool_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception.

    Usage:
        with session_scope() as session:
            coordinator = BatchRunCoordinator.from_session(session, settings)
            report = coordinator.run_daily_batch()
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create every table registered on Base.metadata.

    Kernel models are imported here; packages with their own models must be
    imported by the caller first.
    """
    import rental_kernel.models  # noqa: F401
    from rental_kernel.db.base import Base

    target = engine or get_engine()
    Base.metadata.create_all(target)
    logger.info(
        "tables_created",
        extra={"table_count": len(Base.metadata.tables)},
    )


def reset_engine() -> None:
    """Reset the engine and session factory.  Useful for test cleanup."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
