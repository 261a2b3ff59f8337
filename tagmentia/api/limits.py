"""
Limits API routes.

- GET  /v1/limits: the caller's plan ceilings and category usage
- POST /v1/limits/check: allow/deny for a proposed action
- POST /v1/limits/enforce: same verdict, but a denial is a 403 quota_exceeded
- GET  /v1/storage/quota: screenshot storage usage against the plan quota

Ceilings are rendered in their integer form (-1 = unlimited).
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from tagmentia.core.auth import get_current_user_id
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.limits.service import LimitEvaluator
from tagmentia.features.usage.service import get_storage_quota
from tagmentia.models.limits import LimitCheck


router = APIRouter(tags=["limits"])


def get_limits_cache(request: Request) -> LimitsCache:
    return request.app.state.limits_cache


def get_limit_evaluator(request: Request) -> LimitEvaluator:
    return request.app.state.limit_evaluator


class LimitsResponse(BaseModel):
    plan_id: str
    plan_name: str
    max_categories: int
    max_videos_per_category: int
    max_screenshots_per_user: int
    storage_quota_mb: int
    ai_summary_enabled: bool
    current_categories: int


class LimitCheckRequest(BaseModel):
    feature: str
    category_id: Optional[str] = None


@router.get("/v1/limits", response_model=LimitsResponse)
def get_limits(
    user_id: str = Depends(get_current_user_id),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """
    Current plan limits for the caller (served from the limits cache).

    Errors:
        503: Limits could not be read (limits_unavailable)
    """
    limits = cache.get(user_id)
    return LimitsResponse(
        plan_id=limits.plan_id,
        plan_name=limits.plan_name,
        max_categories=limits.max_categories.raw,
        max_videos_per_category=limits.max_videos_per_category.raw,
        max_screenshots_per_user=limits.max_screenshots_per_user.raw,
        storage_quota_mb=limits.storage_quota_mb.raw,
        ai_summary_enabled=limits.ai_summary_enabled,
        current_categories=limits.current_categories,
    )


@router.post("/v1/limits/check", response_model=LimitCheck)
def check_limit(
    body: LimitCheckRequest,
    user_id: str = Depends(get_current_user_id),
    evaluator: LimitEvaluator = Depends(get_limit_evaluator),
):
    """
    Check whether the caller may perform `feature`.

    Always 200: a denial (including an internal failure) is reported in the
    body with allowed=false.
    """
    return evaluator.check_feature_access(user_id, body.feature, body.category_id)


@router.get("/v1/storage/quota")
def storage_quota(user_id: str = Depends(get_current_user_id)):
    return get_storage_quota(user_id).to_payload()


@router.post("/v1/limits/enforce", response_model=LimitCheck)
def enforce_limit(
    body: LimitCheckRequest,
    user_id: str = Depends(get_current_user_id),
    evaluator: LimitEvaluator = Depends(get_limit_evaluator),
):
    """
    Like /v1/limits/check, but a denial is an error.

    Errors:
        400: Unknown feature, or videos without category_id (validation_error)
        403: Plan ceiling reached (quota_exceeded, with current_usage/limit)
        503: Limits could not be read (limits_unavailable)
    """
    return evaluator.enforce(user_id, body.feature, body.category_id)
