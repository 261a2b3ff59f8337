"""
Admin API routes for plan and subscription controls.

All routes require the X-Admin-Key header.
"""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tagmentia.api.limits import get_limits_cache
from tagmentia.core.admin_auth import AdminActor, require_admin
from tagmentia.core.errors import NotFoundError
from tagmentia.features.billing.reconcile import reconcile_all
from tagmentia.features.billing.service import get_provider
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.subscriptions.service import (
    assign_plan,
    reactivate_subscription,
    suspend_subscription,
)
from tagmentia.features.users.service import delete_user
from tagmentia.models.subscription import BillingInterval, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class AssignPlanRequest(BaseModel):
    plan_id: str
    billing_interval: Optional[BillingInterval] = None
    end_date: Optional[datetime] = None


class ReconcileRequest(BaseModel):
    limit: int = 100


@router.post("/users/{user_id}/plan", response_model=Subscription)
def set_user_plan(
    user_id: str,
    body: AssignPlanRequest,
    actor: AdminActor = Depends(require_admin),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """Assign a plan to a user (replaces any existing subscription row)."""
    subscription = assign_plan(
        user_id,
        body.plan_id,
        billing_interval=body.billing_interval,
        end_date=body.end_date,
        cache=cache,
    )
    logger.info(
        "[admin] plan assigned",
        extra={"actor_id": actor.actor_id, "user_id": user_id, "plan_id": body.plan_id},
    )
    return subscription


@router.post("/users/{user_id}/suspend", response_model=Subscription)
def suspend_user(
    user_id: str,
    actor: AdminActor = Depends(require_admin),
    cache: LimitsCache = Depends(get_limits_cache),
):
    subscription = suspend_subscription(user_id, cache=cache)
    logger.info("[admin] subscription suspended", extra={"actor_id": actor.actor_id, "user_id": user_id})
    return subscription


@router.post("/users/{user_id}/reactivate", response_model=Subscription)
def reactivate_user(
    user_id: str,
    actor: AdminActor = Depends(require_admin),
    cache: LimitsCache = Depends(get_limits_cache),
):
    subscription = reactivate_subscription(user_id, cache=cache)
    logger.info("[admin] subscription reactivated", extra={"actor_id": actor.actor_id, "user_id": user_id})
    return subscription


@router.post("/cache/reset")
def reset_cache(
    actor: AdminActor = Depends(require_admin),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """Drop every cached limits entry."""
    cleared = len(cache)
    cache.invalidate_all()
    logger.info("[admin] limits cache reset", extra={"actor_id": actor.actor_id, "cleared": cleared})
    return {"success": True, "cleared": cleared}


@router.post("/subscriptions/reconcile")
def reconcile_subscriptions(
    body: Optional[ReconcileRequest] = None,
    actor: AdminActor = Depends(require_admin),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """Reconcile up to `limit` active subscriptions against the billing provider."""
    limit = body.limit if body else 100
    stats = reconcile_all(provider=get_provider(), cache=cache, limit=limit)
    logger.info("[admin] reconcile run", extra={"actor_id": actor.actor_id, **stats})
    return stats


@router.delete("/users/{user_id}")
def delete_account(
    user_id: str,
    actor: AdminActor = Depends(require_admin),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """Delete an account with its subscription and owned rows."""
    if not delete_user(user_id, cache=cache):
        raise NotFoundError(f"User {user_id} not found")
    logger.info("[admin] account deleted", extra={"actor_id": actor.actor_id, "user_id": user_id})
    return {"success": True, "user_id": user_id}
