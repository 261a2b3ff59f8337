"""
tagmentia/features/plans/service.py

Plan catalogue service.

Handles:
- Plan seeding (free, premium, gold)
- Plan lookup by id and default plan resolution
- Row -> Plan mapping (ceiling normalization happens here)
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import insert, select, true

from tagmentia.core.database import get_db_session, plans
from tagmentia.models.plan import Ceiling, Plan


# Catalogue seeded on startup; -1 and None mean unlimited
DEFAULT_PLANS: Dict[str, Dict[str, Any]] = {
    "free": {
        "name": "Free Plan",
        "is_default": True,
        "max_categories": 3,
        "max_videos_per_category": 10,
        "max_screenshots_per_user": 20,
        "storage_quota_mb": 100,
        "ai_summary_enabled": False,
        "price_monthly": 0,
        "price_yearly": 0,
    },
    "premium": {
        "name": "Premium Plan",
        "is_default": False,
        "max_categories": 20,
        "max_videos_per_category": 50,
        "max_screenshots_per_user": 200,
        "storage_quota_mb": 1024,
        "ai_summary_enabled": False,
        "price_monthly": 4.99,
        "price_yearly": 49.99,
    },
    "gold": {
        "name": "Gold Plan",
        "is_default": False,
        "max_categories": -1,
        "max_videos_per_category": -1,
        "max_screenshots_per_user": -1,
        "storage_quota_mb": None,
        "ai_summary_enabled": True,
        "price_monthly": 9.99,
        "price_yearly": 99.99,
    },
}


def plan_from_row(row) -> Plan:
    """Map a plans row onto Plan, turning -1/NULL ceilings into unlimited."""
    return Plan(
        plan_id=row.plan_id,
        name=row.name,
        max_categories=Ceiling.from_raw(row.max_categories),
        max_videos_per_category=Ceiling.from_raw(row.max_videos_per_category),
        max_screenshots_per_user=Ceiling.from_raw(row.max_screenshots_per_user),
        storage_quota_mb=Ceiling.from_raw(row.storage_quota_mb),
        ai_summary_enabled=bool(row.ai_summary_enabled),
        is_default=bool(getattr(row, "is_default", False)),
        enabled=bool(getattr(row, "enabled", True)),
        price_monthly=float(getattr(row, "price_monthly", 0) or 0),
        price_yearly=float(getattr(row, "price_yearly", 0) or 0),
        created_at=getattr(row, "created_at", None),
    )


def seed_plans() -> None:
    """Insert any catalogue plan that is missing; existing rows keep admin edits."""
    with get_db_session() as session:
        present = set(session.execute(select(plans.c.plan_id)).scalars())
        missing = [
            {"plan_id": plan_id, "enabled": True, "created_at": datetime.now(timezone.utc), **values}
            for plan_id, values in DEFAULT_PLANS.items()
            if plan_id not in present
        ]
        if missing:
            session.execute(insert(plans), missing)


def _first_plan(condition) -> Optional[Plan]:
    with get_db_session() as session:
        row = session.execute(select(plans).where(condition).limit(1)).first()
    return plan_from_row(row) if row else None


def get_default_plan() -> Optional[Plan]:
    return _first_plan(plans.c.is_default == true())


def get_plan(plan_id: str) -> Optional[Plan]:
    return _first_plan(plans.c.plan_id == plan_id)


def list_plans(include_disabled: bool = False) -> List[Plan]:
    query = select(plans).order_by(plans.c.price_monthly, plans.c.plan_id)
    if not include_disabled:
        query = query.where(plans.c.enabled == true())
    with get_db_session() as session:
        return [plan_from_row(row) for row in session.execute(query).all()]
