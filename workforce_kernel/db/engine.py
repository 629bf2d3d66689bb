"""
Module: workforce_kernel.db.engine
Responsibility: The process-wide engine and session factory, chosen by
    ``DATABASE_URL``, plus ``session_scope`` for kernel-level scripts and
    tests.  Lifecycle services never use ``session_scope``; they take the
    session factory through the transaction coordinator.
Architecture position: Kernel > DB.  Imports models only inside
    create_tables so that metadata is populated.

Invariants enforced:
    - Only PostgreSQL (production) and SQLite (tests) are accepted; the
      remittance ledger's ``ON CONFLICT DO NOTHING`` append needs one of
      the two.
    - PostgreSQL connections default to READ COMMITTED; the coordinator
      raises isolation per unit of work.
    - In-memory SQLite shares one connection (StaticPool) so every session
      sees the same schema; file-backed SQLite waits on locks instead of
      failing at once, so racing writers surface as compare-and-set
      conflicts.
    - Immutability listeners are registered whenever tables are created.

Failure modes:
    - ConfigurationError for an unsupported database URL.
    - RuntimeError when a session is requested before init_engine_from_url.
"""

import atexit
import os
from contextlib import contextmanager
from typing import Generator, Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from workforce_kernel.exceptions import ConfigurationError
from workforce_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

DATABASE_URL_ENV = "DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite://"
SUPPORTED_DIALECTS = frozenset({"postgresql", "sqlite"})

# Seconds a file-backed SQLite connection waits for a competing writer
SQLITE_LOCK_TIMEOUT = 5.0

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def database_url(environ: Mapping[str, str] = os.environ) -> str:
    """``DATABASE_URL`` from the environment, else in-memory SQLite."""
    return environ.get(DATABASE_URL_ENV) or DEFAULT_DATABASE_URL


def init_engine_from_url(
    url: str | None = None,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build the engine and session factory; ``url`` defaults to ``DATABASE_URL``.

    The pool arguments apply to PostgreSQL only.
    """
    global _engine, _SessionFactory

    url = url or database_url()
    try:
        dialect = make_url(url).get_backend_name()
    except ArgumentError as exc:
        raise ConfigurationError("Malformed database URL", setting=DATABASE_URL_ENV) from exc
    if dialect not in SUPPORTED_DIALECTS:
        raise ConfigurationError(
            f"Unsupported database '{dialect}'; use PostgreSQL or SQLite",
            setting=DATABASE_URL_ENV,
        )

    if dialect == "sqlite":
        in_memory = make_url(url).database in (None, "", ":memory:")
        if in_memory:
            engine = create_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False, "timeout": SQLITE_LOCK_TIMEOUT},
            )
    else:
        engine = create_engine(
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

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _engine


def get_session() -> Session:
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """The factory handed to TransactionCoordinator; one session per attempt."""
    return _require_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on any exception.

    For seeding and kernel-level work outside the lifecycle services.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.warning("session_scope_rolled_back", extra={"error_type": type(exc).__name__})
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every kernel table and register the immutability listeners."""
    from workforce_kernel.db.base import Base
    from workforce_kernel.db.immutability import register_immutability_listeners

    import workforce_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())
    register_immutability_listeners()
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every kernel table. Tests only."""
    from workforce_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the pool and forget the engine and session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
