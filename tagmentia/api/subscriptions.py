"""
Subscription API routes for the signed-in user.

- GET  /v1/subscription/status: reconcile against the billing provider, then report
- POST /v1/subscription/cancel: cancel at period end (Stripe) or now (manual plans)
"""
import logging
from fastapi import APIRouter, Depends

from tagmentia.api.limits import get_limits_cache
from tagmentia.core.auth import get_current_user_id
from tagmentia.features.billing.reconcile import reconcile_subscription
from tagmentia.features.billing.service import get_provider
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.subscriptions.service import cancel_subscription
from tagmentia.models.subscription import SubscriptionStatusReport


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/subscription", tags=["subscriptions"])


@router.get("/status", response_model=SubscriptionStatusReport)
def subscription_status(
    user_id: str = Depends(get_current_user_id),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """
    Report the caller's subscription after reconciling it.

    A subscription the provider reports as inactive, or whose end date has
    passed, is downgraded here and reported as Free Plan.
    """
    return reconcile_subscription(user_id, provider=get_provider(), cache=cache)


@router.post("/cancel")
def cancel(
    user_id: str = Depends(get_current_user_id),
    cache: LimitsCache = Depends(get_limits_cache),
):
    """
    Cancel the caller's paid subscription.

    Stripe subscriptions stop renewing and keep their plan until the end of
    the paid period; other subscriptions end now and fall back to Free Plan.

    Errors:
        404: No paid subscription to cancel (not_found)
        503: Billing provider unavailable (billing_unavailable)
    """
    cancellation = cancel_subscription(user_id, provider=get_provider(), cache=cache)
    logger.info("[subscriptions] canceled by user", extra={"user_id": user_id, "status": cancellation.status})
    return {
        "success": True,
        "status": cancellation.status,
        "plan_id": cancellation.plan_id,
        "access_until": cancellation.access_until.isoformat(),
        "message": cancellation.message,
    }
