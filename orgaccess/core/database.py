"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions for organizations, memberships, subscriptions and
  usage counters
"""
from typing import Callable, Optional
from contextlib import contextmanager
import logging
import os

from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, JSON, Index, ForeignKey, PrimaryKeyConstraint, text
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func

from orgaccess.core.config import settings


logger = logging.getLogger(__name__)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL
    if test_url:
        return test_url

    return settings.DATABASE_URL


def build_engine(url: str):
    """Engine for `url`; SQLite gets a thread-shareable connection instead of pool tuning."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,  # Set to True for SQL query logging
    )


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    _engine = build_engine(url)
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session(session_factory: Optional[Callable[[], Session]] = None):
    """
    Context manager for database sessions.

    Commits on success, rolls back on any exception.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = session_factory or get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine=None):
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=engine or get_engine())


def check_connection(engine=None) -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        eng = engine or get_engine()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database connection check failed: %s", e)
        return False


organizations = Table(
    'organizations',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('name', String(255), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=True),
)

# One ACTIVE row per (org_id, actor_id) is enforced by the repository;
# archived rows are kept for audit.
memberships = Table(
    'memberships',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('org_id', String(100), ForeignKey('organizations.id'), nullable=False),
    Column('actor_id', String(100), nullable=False),
    Column('role', String(20), nullable=False),
    Column('status', String(20), nullable=False, server_default='ACTIVE'),
    Column('custom_permissions', JSON, nullable=False, default=list),
    Column('joined_at', DateTime(timezone=True), nullable=True),
    Index('idx_memberships_org_actor', 'org_id', 'actor_id'),
)

# Unique org_id serializes concurrent first-time inserts
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('org_id', String(100), ForeignKey('organizations.id'), nullable=False, unique=True),
    Column('plan', String(20), nullable=False, server_default='BASIC'),
    Column('status', String(20), nullable=False),
    Column('trial_ends_at', DateTime(timezone=True), nullable=True),
    Column('vertical', String(100), nullable=True),
    Column('updated_at', DateTime(timezone=True), nullable=True),
)

usage_counters = Table(
    'usage_counters',
    metadata,
    Column('org_id', String(100), ForeignKey('organizations.id'), nullable=False),
    Column('resource', String(50), nullable=False),
    Column('count', Integer, nullable=False, server_default='0'),
    PrimaryKeyConstraint('org_id', 'resource', name='pk_usage_counters'),
)
