# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy engine for the API, lazy sync engine for
# Celery workers. Both point at the same schema.
#
# SESSION LIFECYCLE (API):
# SqlLogStore opens one session per store call via async_session_factory.
# An insert is a single-row transaction: committed on success, rolled back on
# any exception, so a failed submission never leaves a partial record.
#
# SESSION LIFECYCLE (workers):
# get_sync_session() commits on exit and rolls back on exception.
# =============================================================================

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from loghog.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# - echo=settings.debug: logs SQL statements during development.
# - pool_size / max_overflow: sized for a single API worker process.
# - pool_pre_ping: drops dead connections after a database restart instead
#   of surfacing them as request failures.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

# expire_on_commit=False: attributes stay readable after commit outside
# the session (required in async context).
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Sync Engine — For Celery Workers (Lazy Initialization)
# ---------------------------------------------------------------------------
# Created on first use so the API process never needs psycopg2 loaded.
# ---------------------------------------------------------------------------

_sync_engine = None
_sync_session_factory = None


def _get_sync_engine():
    """Lazily create and cache the sync SQLAlchemy engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_engine(
            settings.database_url_sync,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
        )
    return _sync_engine


def _get_sync_session_factory():
    """Lazily create and cache the sync session factory."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=_get_sync_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _sync_session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a sync database session for Celery workers.

    Usage in Celery tasks:
        with get_sync_session() as session:
            session.execute(delete(LogEntry).where(...))
            # Auto-commits on exit, auto-rollbacks on exception
    """
    factory = _get_sync_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def init_models() -> None:
    """Create all tables and indexes that do not exist yet."""
    from loghog.db.models import Base

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")
