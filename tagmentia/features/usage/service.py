"""
tagmentia/features/usage/service.py

Quota data accessors.

Handles:
- Live usage counters (categories, videos per category, screenshots, bytes)
- Plan ceiling lookup for a user (active subscription, else default plan)
- Screenshot and storage quota snapshots

No business logic lives here: every function returns raw numbers or
snapshots, or raises LimitsUnavailableError when the data layer fails.
Counters are always computed from owned rows; nothing is persisted.
"""

from functools import wraps
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from tagmentia.core.database import (
    get_db_session,
    categories,
    videos,
    screenshots,
    plans,
    user_subscriptions,
)
from tagmentia.core.errors import LimitsUnavailableError
from tagmentia.features.plans.service import plan_from_row, get_default_plan
from tagmentia.models.limits import UserPlanLimits, ScreenshotLimits, StorageQuota
from tagmentia.models.plan import Plan
from tagmentia.models.subscription import SubscriptionStatus


def _data_layer(fn):
    """Re-raise database failures as LimitsUnavailableError."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as e:
            raise LimitsUnavailableError(f"Unable to determine limits: {e.__class__.__name__}") from e
    return wrapper


@_data_layer
def count_categories(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(categories).where(categories.c.user_id == user_id)
        ).scalar_one()


@_data_layer
def count_videos_in_category(user_id: str, category_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count())
            .select_from(videos)
            .where(videos.c.user_id == user_id)
            .where(videos.c.category_id == category_id)
        ).scalar_one()


@_data_layer
def count_screenshots(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(screenshots).where(screenshots.c.user_id == user_id)
        ).scalar_one()


@_data_layer
def sum_screenshot_bytes(user_id: str) -> int:
    with get_db_session() as session:
        total = session.execute(
            select(func.coalesce(func.sum(screenshots.c.size_bytes), 0)).where(screenshots.c.user_id == user_id)
        ).scalar_one()
        return int(total)


@_data_layer
def get_user_plan(user_id: str) -> Plan:
    """
    Resolve the plan whose ceilings apply to a user.

    The user's active subscription wins; users with no active subscription
    (never subscribed, canceled, expired, suspended) get the default plan.

    Raises:
        LimitsUnavailableError: If no plan can be resolved at all
    """
    with get_db_session() as session:
        row = session.execute(
            select(plans)
            .join(user_subscriptions, user_subscriptions.c.plan_id == plans.c.plan_id)
            .where(user_subscriptions.c.user_id == user_id)
            .where(user_subscriptions.c.status == SubscriptionStatus.ACTIVE.value)
        ).first()

    if row:
        return plan_from_row(row)

    default_plan: Optional[Plan] = get_default_plan()
    if not default_plan:
        raise LimitsUnavailableError("Unable to determine limits: no default plan configured")
    return default_plan


def get_user_plan_limits(user_id: str) -> UserPlanLimits:
    """
    Plan ceilings for a user together with their current category count.

    This is the fetch behind the limits cache.
    """
    plan = get_user_plan(user_id)
    return UserPlanLimits(
        plan_id=plan.plan_id,
        plan_name=plan.name,
        max_categories=plan.max_categories,
        max_videos_per_category=plan.max_videos_per_category,
        max_screenshots_per_user=plan.max_screenshots_per_user,
        storage_quota_mb=plan.storage_quota_mb,
        ai_summary_enabled=plan.ai_summary_enabled,
        current_categories=count_categories(user_id),
    )


def get_screenshot_limits(user_id: str) -> ScreenshotLimits:
    plan = get_user_plan(user_id)
    return ScreenshotLimits(
        max_screenshots=plan.max_screenshots_per_user,
        current_screenshots=count_screenshots(user_id),
    )


def get_storage_quota(user_id: str) -> StorageQuota:
    plan = get_user_plan(user_id)
    return StorageQuota.from_plan(plan.storage_quota_mb, sum_screenshot_bytes(user_id))
