"""
Database Session Management

Engine and session lifecycle for the run-history database. DATABASE_URL
points at PostgreSQL in deployment; without it runs are logged to a local
SQLite file (SQLITE_PATH).
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from src.utils.config import get_settings

from .models import Base

logger = logging.getLogger(__name__)

IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


# =============================================================================
# ENGINE
# =============================================================================

def get_database_url() -> str:
    """Resolve the run-history database URL from settings."""
    settings = get_settings()
    url = settings.DATABASE_URL

    if not url:
        logger.warning(f"No DATABASE_URL configured, logging GAP runs to SQLite at {settings.SQLITE_PATH}")
        return f"sqlite:///{settings.SQLITE_PATH}"

    # Hosted Postgres providers hand out postgres:// URLs
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def create_db_engine(url: Optional[str] = None) -> Engine:
    """
    Build an engine for the given URL.

    PostgreSQL gets a small pre-pinged pool. SQLite connections may be used
    across threads; in-memory SQLite shares a single connection so every
    session sees the same tables.
    """
    url = url or get_database_url()
    echo = get_settings().SQL_DEBUG

    if url.startswith("postgresql"):
        logger.info("Creating PostgreSQL engine for GAP run history")
        return create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_recycle=1800,
            pool_pre_ping=True,
            echo=echo,
        )

    options = {"connect_args": {"check_same_thread": False}, "echo": echo}
    if url in IN_MEMORY_SQLITE_URLS:
        options["poolclass"] = StaticPool

    logger.info(f"Creating SQLite engine for GAP run history ({url})")
    return create_engine(url, **options)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine and session factory (settings changed, tests)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


# =============================================================================
# SESSIONS
# =============================================================================

def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionLocal


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Transactional session scope. Commits on success, rolls back and
    re-raises on error.

    Usage:
        with get_db_context() as db:
            db.add(GapPlanRun(...))
    """
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(drop_all: bool = False) -> None:
    """Create the run-history tables, optionally dropping them first."""
    engine = get_engine()

    if drop_all:
        logger.warning("Dropping GAP run history tables")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("GAP run history tables ready")
