"""
SQLAlchemy database setup and session management for the quota store.
"""
import logging
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

# Session factory, bound lazily by init_db()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def normalize_database_url(database_url: Optional[str]) -> str:
    """
    Validate and normalize a PostgreSQL connection string for SQLAlchemy.

    postgres:// (Supabase and some providers) and postgresql:// are rewritten to
    postgresql+psycopg:// so SQLAlchemy uses psycopg3 rather than psycopg2.

    Args:
        database_url: Raw DATABASE_URL value

    Returns:
        SQLAlchemy URL using the psycopg dialect

    Raises:
        RuntimeError: If the URL is missing or not a PostgreSQL URL
    """
    if not database_url:
        raise RuntimeError(
            "DATABASE_URL environment variable is required. "
            "Please set DATABASE_URL to a PostgreSQL connection string."
        )

    if not (database_url.startswith("postgresql://") or
            database_url.startswith("postgres://") or
            database_url.startswith("postgresql+psycopg://")):
        raise RuntimeError(
            f"DATABASE_URL must be a PostgreSQL connection string (postgresql:// or postgres://). "
            f"Got: {database_url[:50]}..."
        )

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def create_db_engine(database_url: Optional[str]) -> Engine:
    """
    Create the SQLAlchemy engine with connection pooling.

    Args:
        database_url: Raw DATABASE_URL value

    Returns:
        Configured Engine
    """
    return create_engine(
        normalize_database_url(database_url),
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Test connections before using (handles stale connections)
        pool_recycle=3600,
        connect_args={
            "connect_timeout": 10,
        }
    )


def init_db(engine: Engine, create_all: bool = False) -> None:
    """
    Bind the session factory to an engine and optionally create tables.

    Args:
        engine: Engine to bind
        create_all: Create tables via metadata.create_all (local development and tests only)
    """
    # Import models to ensure they're registered with Base
    from trace_analyst.models.subscription import Subscription  # noqa: F401

    SessionLocal.configure(bind=engine)
    if create_all:
        Base.metadata.create_all(bind=engine)
        logger.warning("Tables created via create_all(). This should only be used for local development.")


def get_db() -> Session:
    """
    Generator function to get database session.

    Usage:
        db = next(get_db())
        try:
            # use db
        finally:
            db.close()

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
