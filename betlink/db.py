"""
Database configuration with lazy initialization.

The engine is created on first access so the app can start (and answer
postbacks with a 500 instead of crashing on import) while the database
is temporarily unavailable.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool

from .config import settings

logger = logging.getLogger(__name__)

# Global engine instance (lazily initialized)
_engine = None
_SessionLocal = None

Base = declarative_base()


def get_engine():
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        if not settings.is_local() and settings.database_url.startswith("sqlite"):
            raise ValueError(
                "SQLite database is not supported outside local/dev. "
                "Set DATABASE_URL to a PostgreSQL instance."
            )

        db_url_safe = settings.database_url[:30] + "..." if len(settings.database_url) > 30 else settings.database_url
        logger.info("Creating database engine for: %s", db_url_safe)

        if settings.database_url.startswith("sqlite"):
            _engine = create_engine(
                settings.database_url,
                poolclass=QueuePool,
                pool_size=5,
                max_overflow=0,
                connect_args={"check_same_thread": False},
            )
        else:
            _engine = create_engine(
                settings.database_url,
                poolclass=QueuePool,
                pool_size=20,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
    return _engine


def get_session_local():
    """Get or create the SessionLocal class."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def SessionLocal():
    """Open a new session bound to the lazily created engine."""
    return get_session_local()()


def get_db():
    """
    Dependency that provides a database session.
    Used by FastAPI's dependency injection.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create tables for all registered models."""
    from . import models  # noqa: F401  (registers models on Base)

    Base.metadata.create_all(bind=get_engine())
