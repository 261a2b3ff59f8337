"""
Account service.

- get_or_create_user(user_id): first sight of a user; starts them on the default plan
- get_user(user_id)
- delete_user(user_id): account deletion, removing every owned row
"""

from datetime import datetime, timezone
import logging
from typing import Optional
from sqlalchemy import select, insert, delete

from tagmentia.core.database import get_db_session, users, categories, videos, screenshots
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.models.user import User


logger = logging.getLogger(__name__)


def _user_from_row(row) -> User:
    return User(
        user_id=row.user_id,
        created_at=row.created_at,
        display_name=row.display_name or User.default_display_name(row.user_id),
        status=row.status,
    )


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.user_id == user_id)).first()
        return _user_from_row(row) if row else None


def get_or_create_user(user_id: str, display_name: Optional[str] = None) -> User:
    existing = get_user(user_id)
    if existing:
        return existing

    user = User(
        user_id=user_id,
        created_at=datetime.now(timezone.utc),
        display_name=User.default_display_name(user_id, display_name),
    )
    with get_db_session() as session:
        session.execute(insert(users).values(**user.model_dump()))
    logger.info("[users] created", extra={"user_id": user_id})

    from tagmentia.features.subscriptions.service import assign_default_plan
    try:
        assign_default_plan(user_id)
    except Exception:
        # Limit checks resolve the default plan when no subscription row exists
        logger.warning("[users] default plan assignment failed", extra={"user_id": user_id}, exc_info=True)

    return user


def delete_user(user_id: str, *, cache: Optional[LimitsCache] = None) -> bool:
    """
    Delete an account and everything it owns.

    Returns False if the user did not exist.
    """
    from tagmentia.features.subscriptions.service import delete_subscription

    if not get_user(user_id):
        return False

    delete_subscription(user_id, cache=cache)
    with get_db_session() as session:
        for table in (screenshots, videos, categories):
            session.execute(delete(table).where(table.c.user_id == user_id))
        session.execute(delete(users).where(users.c.user_id == user_id))

    logger.info("[users] deleted", extra={"user_id": user_id})
    return True
