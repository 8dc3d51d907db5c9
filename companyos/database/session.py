"""
Database engine and sessions.

The API gets one session per request through get_db_session; the
expiration monitor job opens its own with session_scope().

Environment:
    DATABASE_URL     required; postgres:// is accepted and rewritten
    DB_POOL_SIZE     pool size for server databases (default 5)
    DB_MAX_OVERFLOW  extra connections under load (default 10)
"""

import os
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


class DatabaseNotConfigured(RuntimeError):
    """Raised when DATABASE_URL is missing."""


def get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise DatabaseNotConfigured("DATABASE_URL environment variable is not set")
    # SQLAlchemy only accepts the postgresql:// scheme
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    return database_url


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }


def get_engine() -> Engine:
    """Create the process-wide engine on first use."""
    global _engine
    if _engine is None:
        database_url = get_database_url()
        _engine = create_engine(database_url, **_engine_options(database_url))
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def reset_engine() -> None:
    """Dispose the engine so the next call re-reads DATABASE_URL."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_db_session() -> Iterator[Session]:
    """
    FastAPI dependency yielding a request-scoped session.

    Responds 503 when the database is not configured.
    """
    try:
        factory = get_session_factory()
    except DatabaseNotConfigured:
        logger.error("Database accessed but DATABASE_URL is not set")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session for jobs and scripts. Rolls back if the block raises.

    Usage:
        with session_scope() as session:
            ...
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
