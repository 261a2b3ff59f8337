"""
Engine lifecycle and table definitions.

One engine per process, created lazily from DATABASE_URL (or
TEST_DATABASE_URL when set). SQLite URLs share a single connection so an
in-memory database lives as long as the engine does.
"""
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
    false,
    text,
    true,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

from tagmentia.core.config import settings

logger = logging.getLogger(__name__)

metadata = MetaData()

_POOL_OPTIONS = {"pool_size": 10, "max_overflow": 20, "pool_timeout": 30, "pool_recycle": 3600}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_database_url() -> Optional[str]:
    return os.getenv("TEST_DATABASE_URL") or settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None) -> Engine:
    """Create (or replace) the process engine and its session factory."""
    global _engine, _session_factory

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL is not configured")

    if url.startswith("sqlite"):
        _engine = create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        _engine = create_engine(url, poolclass=QueuePool, **_POOL_OPTIONS)
    _session_factory = sessionmaker(bind=_engine, autoflush=False)
    return _engine


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine, _session_factory = None, None


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        init_engine()
    return _session_factory


@contextmanager
def get_db_session() -> Iterator[Session]:
    """
    Transactional session scope: commits when the block exits cleanly,
    rolls back and re-raises otherwise.

        with get_db_session() as session:
            session.execute(...)
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    metadata.create_all(bind=get_engine())


def drop_all_tables() -> None:
    """Destructive; tests and local development only."""
    metadata.drop_all(bind=get_engine())


def check_connection() -> bool:
    """True when a trivial query round-trips to the database."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("[db] connection check failed: %s", e.__class__.__name__)
        return False
    return True


def _created_at() -> Column:
    return Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False)


def _owner() -> Column:
    return Column("user_id", String(100), ForeignKey("app_users.user_id"), nullable=False, index=True)


users = Table(
    "app_users",
    metadata,
    Column("user_id", String(100), primary_key=True),
    Column("display_name", Text),
    Column("status", String(50), nullable=False, server_default="active"),
    _created_at(),
)

# -1 in max_categories/max_videos_per_category and NULL in
# max_screenshots_per_user/storage_quota_mb mean unlimited.
plans = Table(
    "plans",
    metadata,
    Column("plan_id", String(50), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("max_categories", Integer, nullable=False, server_default="3"),
    Column("max_videos_per_category", Integer, nullable=False, server_default="10"),
    Column("max_screenshots_per_user", Integer),
    Column("storage_quota_mb", Integer),
    Column("ai_summary_enabled", Boolean, nullable=False, server_default=false()),
    Column("is_default", Boolean, nullable=False, server_default=false(), index=True),
    Column("enabled", Boolean, nullable=False, server_default=true()),
    Column("price_monthly", Numeric(10, 2), nullable=False, server_default="0"),
    Column("price_yearly", Numeric(10, 2), nullable=False, server_default="0"),
    Column("stripe_monthly_price_id", String(100)),
    Column("stripe_yearly_price_id", String(100)),
    _created_at(),
)

# At most one row per user
user_subscriptions = Table(
    "user_subscriptions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(100), ForeignKey("app_users.user_id"), nullable=False, unique=True, index=True),
    Column("plan_id", String(50), ForeignKey("plans.plan_id"), nullable=False),
    Column("status", String(50), nullable=False, server_default="active", index=True),
    Column("billing_interval", String(20)),
    Column("start_date", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("end_date", DateTime(timezone=True)),
    Column("stripe_customer_id", String(100)),
    Column("stripe_subscription_id", String(100), unique=True, index=True),
    Column("cancel_at_period_end", Boolean, nullable=False, server_default=false()),
    _created_at(),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

categories = Table(
    "categories",
    metadata,
    Column("id", String(100), primary_key=True),
    _owner(),
    Column("name", Text, nullable=False),
    _created_at(),
)

videos = Table(
    "videos",
    metadata,
    Column("id", String(100), primary_key=True),
    _owner(),
    Column("category_id", String(100), ForeignKey("categories.id"), nullable=False),
    Column("title", Text, nullable=False),
    Column("url", Text),
    _created_at(),
    Index("idx_videos_user_category", "user_id", "category_id"),
)

screenshots = Table(
    "screenshots",
    metadata,
    Column("id", String(100), primary_key=True),
    _owner(),
    Column("video_id", String(100), ForeignKey("videos.id"), nullable=False),
    Column("category_id", String(100), ForeignKey("categories.id"), nullable=False),
    Column("size_bytes", BigInteger, nullable=False, server_default="0"),
    _created_at(),
)

# Processed Stripe webhook events, keyed by event id
billing_events = Table(
    "billing_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("stripe_event_id", String(100), nullable=False, unique=True, index=True),
    Column("event_type", String(100), nullable=False, index=True),
    Column("received_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("processed", Boolean, nullable=False, server_default=false()),
    Column("processed_at", DateTime(timezone=True)),
)
