"""
Database base configuration and utilities for GreenLedger

Every service component receives a session factory at construction; there
is no module-level engine. ``ReportingService`` builds one engine per
process from ``LedgerConfig.database_url`` and tests build one per test.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from greenledger.config import get_config

# Create declarative base
Base = declarative_base()

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """
    Create a SQLAlchemy engine for the ledger store

    In-memory SQLite URLs use a StaticPool so every session shares the
    same connection (and therefore the same database). Other SQLite URLs
    get a per-use connection; server databases get a QueuePool.

    Args:
        database_url: Database URL (defaults to ``LedgerConfig.database_url``)
        **kwargs: pool_size, max_overflow, pool_timeout, pool_recycle, echo

    Returns:
        SQLAlchemy Engine
    """
    url = database_url or get_config().database_url
    echo = kwargs.get("echo", False)

    if url.startswith("sqlite"):
        engine_config = {"connect_args": {"check_same_thread": False}, "echo": echo}
        if url in _IN_MEMORY_URLS:
            engine_config["poolclass"] = StaticPool
    else:
        engine_config = {
            "poolclass": QueuePool,
            "pool_size": kwargs.get("pool_size", 5),
            "max_overflow": kwargs.get("max_overflow", 10),
            "pool_timeout": kwargs.get("pool_timeout", 30),
            "pool_recycle": kwargs.get("pool_recycle", 3600),
            "pool_pre_ping": True,
            "echo": echo,
        }

    engine = create_engine(url, **engine_config)

    # SQLite leaves foreign keys unenforced unless asked
    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Create a session factory bound to ``engine``

    Objects stay readable after commit so services can build results from
    rows they just persisted.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional session context manager

    Commits on success, rolls back on any exception and always closes.

    Args:
        session_factory: Session factory to draw the session from

    Yields:
        Database session
    """
    session = session_factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine, drop_all: bool = False) -> None:
    """
    Create every ledger table on ``engine``

    Args:
        engine: SQLAlchemy engine
        drop_all: If True, drop all tables first
    """
    # Register every mapped table on Base.metadata
    from greenledger.db import models  # noqa: F401

    if drop_all:
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
