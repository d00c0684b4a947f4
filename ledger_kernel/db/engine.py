"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the ledger core.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables/drop_tables, which import models).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (FOR UPDATE) where counters need serialised increments.
    - SQLite (tests, local use) opens every transaction with
      ``BEGIN IMMEDIATE`` so concurrent writers serialise on the database
      lock instead of failing on lock upgrade.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so SAVEPOINT and locking work."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build an engine for a database URL without installing it globally.

    SQLite engines get the transaction hooks and, for in-memory URLs, a
    single shared connection.  Other backends use a QueuePool with
    READ COMMITTED isolation.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        options: dict = {
            "echo": echo,
            "connect_args": {"check_same_thread": False, "timeout": pool_timeout},
        }
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise each checkout sees an empty database
            options["poolclass"] = StaticPool
        engine = create_engine(url, **options)
        _install_sqlite_transaction_hooks(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized.
        All subsequent get_engine/get_session calls use this engine.

    Args:
        database_url: PostgreSQL or SQLite connection URL.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()
    _engine = create_engine_from_url(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "echo": echo,
        },
    )

    return _engine


_NOT_INITIALIZED = "Ledger database not initialized; call init_engine_from_url() first."


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The process-wide session factory.

    ``SqlCounterStore`` takes the factory rather than a session so each
    allocation runs in its own short transaction.

    Raises:
        RuntimeError: init_engine_from_url() has not run.
    """
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    """New session from the process-wide factory."""
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope() as session:
            service = PaymentService(session, ...)
            service.record_payment(...)
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


def create_tables() -> None:
    """
    Create all tables defined in the models.

    Preconditions: Engine must be initialized via init_engine_from_url().
    """
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)

