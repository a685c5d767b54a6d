"""
Engine and session handling for jobs and the sync worker.

There is one engine per process. Each job execution gets its own session
from session_scope(); jobs commit at their own batch and lock boundaries.

Usage:
    from soundfy.database.session import session_scope

    with session_scope() as db:
        shop = Shop.find_by_domain(db, domain)
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from soundfy.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Connections idle longer than this are replaced before reuse
POOL_RECYCLE_SECONDS = 1800

_engine = None
_SessionLocal = None


def _get_database_url() -> str:
    """
    Read DATABASE_URL and point PostgreSQL URLs at the psycopg 3 driver.

    Accepts the short postgres:// scheme some hosts hand out.
    """
    database_url = get_settings().database_url
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    scheme, sep, rest = database_url.partition("://")
    if scheme in ("postgres", "postgresql"):
        return f"postgresql+psycopg{sep}{rest}"
    return database_url


def _engine_options(settings: Settings) -> Dict[str, Any]:
    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": POOL_RECYCLE_SECONDS,
    }


def get_engine() -> Engine:
    """Create the process engine on first use."""
    global _engine
    if _engine is not None:
        return _engine

    try:
        database_url = _get_database_url()
    except ValueError as e:
        logger.error("database.engine.not_configured", extra={"error": str(e)})
        raise

    settings = get_settings()
    _engine = create_engine(database_url, **_engine_options(settings))
    logger.info("database.engine.created", extra={
        "dialect": _engine.dialect.name,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    })
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False)
    return _SessionLocal


def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session for one job execution.

    Anything still uncommitted when the block raises is rolled back.
    Committing is left to the caller.
    """
    try:
        factory = get_session_factory()
    except ValueError as e:
        raise RuntimeError(f"Database not configured: {e}") from e

    session = factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
