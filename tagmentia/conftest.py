# tagmentia/conftest.py
import itertools
import os
import pytest
from datetime import datetime, timezone
from sqlalchemy import insert

from tagmentia.core.database import (
    init_engine,
    dispose_engine,
    create_all_tables,
    drop_all_tables,
    get_db_session,
    categories,
    videos,
    screenshots,
)
from tagmentia.features.plans.service import seed_plans


@pytest.fixture(scope="function", autouse=True)
def database():
    """
    Fresh database per test.

    Uses TEST_DATABASE_URL when set, otherwise an in-memory SQLite database
    shared across sessions through StaticPool.
    """
    init_engine(os.getenv("TEST_DATABASE_URL") or "sqlite://")
    create_all_tables()
    seed_plans()
    yield
    drop_all_tables()
    dispose_engine()


@pytest.fixture
def make_user():
    """Create a user on the default plan; returns its id."""
    from tagmentia.features.users.service import get_or_create_user

    def _make(user_id: str = "user-1") -> str:
        get_or_create_user(user_id)
        return user_id

    return _make


@pytest.fixture
def owned_rows():
    """Insert categories, videos and screenshots owned by a user."""
    counter = itertools.count(1)
    now = datetime.now(timezone.utc)

    class OwnedRows:
        def category(self, user_id: str, category_id: str = None) -> str:
            category_id = category_id or f"cat-{next(counter)}"
            with get_db_session() as session:
                session.execute(
                    insert(categories).values(id=category_id, user_id=user_id, name=category_id, created_at=now)
                )
            return category_id

        def video(self, user_id: str, category_id: str) -> str:
            video_id = f"vid-{next(counter)}"
            with get_db_session() as session:
                session.execute(
                    insert(videos).values(
                        id=video_id, user_id=user_id, category_id=category_id, title=video_id, created_at=now
                    )
                )
            return video_id

        def screenshot(self, user_id: str, video_id: str, category_id: str, size_bytes: int = 0) -> str:
            screenshot_id = f"shot-{next(counter)}"
            with get_db_session() as session:
                session.execute(
                    insert(screenshots).values(
                        id=screenshot_id,
                        user_id=user_id,
                        video_id=video_id,
                        category_id=category_id,
                        size_bytes=size_bytes,
                        created_at=now,
                    )
                )
            return screenshot_id

    return OwnedRows()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
