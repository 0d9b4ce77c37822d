"""
SQLAlchemy Core engine, sessions and table definitions.

The profile row is the unit of consistency for a user: the weekly usage
counter and the subscription state both live on it, so a webhook, a quota
check and the reconciliation sweep all contend on the same row.
"""
from contextlib import contextmanager
import logging
from typing import Optional

from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    BigInteger,
    String,
    DateTime,
    Boolean,
    JSON,
    Index,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from wardrobe.core.config import settings


logger = logging.getLogger("wardrobe.database")

metadata = MetaData()

POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600

_engine: Optional[Engine] = None
_SessionLocal = None


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite serializes writers; concurrent increments wait on the file lock
        return {"connect_args": {"check_same_thread": False, "timeout": POOL_TIMEOUT}}
    return {
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)bind the module engine. TEST_DATABASE_URL wins over DATABASE_URL when set."""
    global _engine, _SessionLocal

    url = database_url or settings.TEST_DATABASE_URL or settings.DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL is not configured. Set it in the environment or .env file.")

    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, **_engine_options(url))
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False)
    logger.info("[db] engine ready", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


@contextmanager
def get_db_session():
    """One transaction per block: commit on clean exit, roll back on any exception."""
    if _SessionLocal is None:
        init_engine()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """Idempotent; existing tables are left alone."""
    metadata.create_all(bind=get_engine())


def check_connection() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, ValueError) as e:
        logger.warning("[db] connection check failed: %s", e)
        return False
    return True


# User profile document. The usage counter and the subscription state are
# embedded here; both are keyed by user id and never live elsewhere.
profiles = Table(
    'profiles',
    metadata,
    Column('user_id', String(128), primary_key=True),
    Column('email', String(255), nullable=True),

    # Usage counter (weekly, lazily reset)
    Column('image_uploads', Integer, nullable=False, server_default='0'),
    Column('outfit_generations', Integer, nullable=False, server_default='0'),
    Column('week_start_timestamp', BigInteger, nullable=True),  # epoch ms, Monday 00:00 UTC

    # Subscription state
    Column('subscription_tier', String(20), nullable=True),  # free | basic | premium
    Column('subscription_status', String(50), nullable=True),
    Column('subscription_id', String(255), nullable=True),
    Column('price_id', String(255), nullable=True),
    Column('current_period_start', BigInteger, nullable=True),  # epoch seconds
    Column('current_period_end', BigInteger, nullable=True),  # epoch seconds
    Column('cancel_at_period_end', Boolean, nullable=False, server_default='0'),
    Column('canceled_at', BigInteger, nullable=True),  # epoch seconds
    Column('stripe_customer_id', String(255), nullable=True),

    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_profiles_stripe_customer_id', 'stripe_customer_id'),
    Index('idx_profiles_tier_period_end', 'subscription_tier', 'current_period_end'),
)


# Uploaded clothing items and their classification
wardrobe_items = Table(
    'wardrobe_items',
    metadata,
    Column('item_id', String(36), primary_key=True),
    Column('user_id', String(128), nullable=False),
    Column('image_url', String(2048), nullable=False),
    Column('status', String(20), nullable=False, server_default='pending'),  # pending | complete
    Column('analysis', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_wardrobe_items_user_id', 'user_id'),
)


# Scheduled job bookkeeping (reconciliation sweeps)
job_runs = Table(
    'job_runs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('job_name', String(100), nullable=False),
    Column('started_at', DateTime(timezone=True), nullable=False),
    Column('finished_at', DateTime(timezone=True), nullable=True),
    Column('status', String(20), nullable=False),  # success | failed
    Column('stats', JSON, nullable=True),
    Column('error', String(500), nullable=True),
    Index('idx_job_runs_job_name_started_at', 'job_name', 'started_at'),
)
