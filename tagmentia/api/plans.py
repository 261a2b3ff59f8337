"""
Plan catalogue routes.

- GET /v1/plans: enabled plans, cheapest first (public)

Ceilings are rendered in their integer form (-1 = unlimited).
"""
from typing import List

from fastapi import APIRouter
from pydantic import BaseModel

from tagmentia.features.plans.service import list_plans


router = APIRouter(prefix="/v1/plans", tags=["plans"])


class PlanResponse(BaseModel):
    plan_id: str
    name: str
    max_categories: int
    max_videos_per_category: int
    max_screenshots_per_user: int
    storage_quota_mb: int
    ai_summary_enabled: bool
    is_default: bool
    price_monthly: float
    price_yearly: float


@router.get("", response_model=List[PlanResponse])
def get_plans():
    return [
        PlanResponse(
            plan_id=plan.plan_id,
            name=plan.name,
            max_categories=plan.max_categories.raw,
            max_videos_per_category=plan.max_videos_per_category.raw,
            max_screenshots_per_user=plan.max_screenshots_per_user.raw,
            storage_quota_mb=plan.storage_quota_mb.raw,
            ai_summary_enabled=plan.ai_summary_enabled,
            is_default=plan.is_default,
            price_monthly=plan.price_monthly,
            price_yearly=plan.price_yearly,
        )
        for plan in list_plans()
    ]
