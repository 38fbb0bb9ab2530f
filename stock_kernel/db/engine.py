"""
Module: stock_kernel.db.engine
Responsibility: The single place the ledger's database connection is
    configured: engine construction per backend, the module-level session
    factory, transactional scopes, and table creation.
Architecture position: Kernel > DB.  create_tables() imports the models to
    populate metadata; nothing else here depends on an upper layer.

Invariants enforced:
    - PostgreSQL: READ COMMITTED, pre-pinged QueuePool.  Appends serialize on
      the locked sequence counter row, not on the isolation level.
    - SQLite: ``check_same_thread`` off so the per-thread sessions used by
      projection workers can share a database; ``sqlite://`` (in-memory)
      uses a StaticPool so every session sees the same data.
    - Sessions do not expire attributes on commit; the ledger builds DTOs
      from rows after its transaction has closed.

Failure modes:
    - RuntimeError from the accessors before init_engine_from_url().
"""

import atexit
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _build_engine(
    database_url: str,
    *,
    echo: bool,
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_timeout: int,
    pool_recycle: int,
) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
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
    if url.database in (None, "", ":memory:"):
        return create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    # timeout: seconds a writer waits on SQLite's database lock
    return create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": pool_timeout},
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
    Create the module engine and session factory for ``database_url``.

    A second call replaces the first; call reset_engine() in between to
    release the previous pool.  Pool arguments apply to PostgreSQL only,
    except ``pool_timeout`` which is also SQLite's lock wait.
    """
    global _engine, _SessionFactory

    _engine = _build_engine(
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
            "dialect": _engine.dialect.name,
            "pool_class": type(_engine.pool).__name__,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory handed to MovementLedger and the SQL catalog lookups."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

    Usage:
        with session_scope(factory) as session:
            session.add(row)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create ledger, sequence and catalog tables; arm the immutability guard."""
    from stock_kernel.db.base import Base
    from stock_kernel.db.immutability import register_immutability_listeners
    import stock_kernel.models  # noqa: F401  populates Base.metadata

    Base.metadata.create_all(engine or get_engine())
    register_immutability_listeners()
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every table. Tests and local resets only."""
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the pool and forget the engine and factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
