"""
Subscription state reconciliation.

Re-verifies a user's active subscription against the billing provider
before it is trusted for limit checks or display:

1. No active subscription: report Free Plan.
2. Provider says anything other than active: mark canceled, report Free Plan.
   Provider unreachable: log and keep the subscription (fail open).
3. end_date in the past: mark expired, report Free Plan. This runs even when
   step 2 was skipped or failed, so an outage never extends a paid plan.
4. Otherwise report the active plan.

Runs on demand (status display, admin bulk action); nothing schedules it.
"""
from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from tagmentia.features.billing.provider import BillingProvider, BillingProviderError
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.subscriptions.service import (
    get_active_subscription,
    list_active_subscriptions,
    set_status,
)
from tagmentia.models.subscription import Subscription, SubscriptionStatus, SubscriptionStatusReport


logger = logging.getLogger(__name__)


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _provider_says_inactive(subscription: Subscription, provider: Optional[BillingProvider]) -> bool:
    """True only when the provider positively reports a non-active status."""
    if not subscription.stripe_subscription_id or provider is None:
        return False
    try:
        live = provider.get_subscription_status(subscription.stripe_subscription_id)
    except Exception as e:
        # Any provider failure (BillingProviderError, timeouts, bugs) keeps the local status
        logger.warning(
            "[reconcile] provider check failed, keeping local status",
            extra={
                "user_id": subscription.user_id,
                "stripe_subscription_id": subscription.stripe_subscription_id,
                "error_type": type(e).__name__,
                "error": str(e),
                "expected": isinstance(e, BillingProviderError),
            },
        )
        return False

    logger.info(
        "[reconcile] provider status checked",
        extra={
            "user_id": subscription.user_id,
            "stripe_subscription_id": subscription.stripe_subscription_id,
            "provider_status": live.status,
        },
    )
    return not live.is_active


def _reconcile(
    subscription: Subscription,
    *,
    provider: Optional[BillingProvider],
    now: datetime,
    cache: Optional[LimitsCache],
) -> SubscriptionStatusReport:
    user_id = subscription.user_id

    if _provider_says_inactive(subscription, provider):
        set_status(user_id, SubscriptionStatus.CANCELED, cache=cache)
        logger.warning("[reconcile] canceled (provider inactive)", extra={"user_id": user_id})
        return SubscriptionStatusReport.not_subscribed()

    if subscription.end_date is not None and now > subscription.end_date:
        set_status(user_id, SubscriptionStatus.EXPIRED, cache=cache)
        logger.warning(
            "[reconcile] expired",
            extra={"user_id": user_id, "end_date": subscription.end_date.isoformat()},
        )
        return SubscriptionStatusReport.not_subscribed()

    return SubscriptionStatusReport(
        subscribed=True,
        plan=subscription.plan_name or subscription.plan_id,
        billing_interval=subscription.billing_interval,
        end_date=subscription.end_date,
        stripe_customer_id=subscription.stripe_customer_id,
        stripe_subscription_id=subscription.stripe_subscription_id,
        cancel_at_period_end=subscription.cancel_at_period_end,
    )


def reconcile_subscription(
    user_id: str,
    *,
    provider: Optional[BillingProvider],
    now: Optional[datetime] = None,
    cache: Optional[LimitsCache] = None,
) -> SubscriptionStatusReport:
    """
    Reconcile one user's subscription and report what is in force.

    Args:
        user_id: User to reconcile
        provider: Billing provider, or None when billing is not configured
        now: Fixed timestamp for deterministic runs (defaults to now)
        cache: Limits cache to invalidate when the status is downgraded

    Data-layer errors propagate; provider errors never do.
    """
    subscription = get_active_subscription(user_id)
    if not subscription:
        logger.info("[reconcile] no active subscription", extra={"user_id": user_id})
        return SubscriptionStatusReport.not_subscribed()

    return _reconcile(subscription, provider=provider, now=_normalize_now(now), cache=cache)


def reconcile_all(
    *,
    provider: Optional[BillingProvider],
    now: Optional[datetime] = None,
    cache: Optional[LimitsCache] = None,
    limit: int = 100,
) -> Dict[str, Any]:
    """Run reconciliation over up to `limit` active subscriptions."""
    normalized_now = _normalize_now(now)
    checked = 0
    downgraded = 0

    for subscription in list_active_subscriptions(limit=limit):
        checked += 1
        report = _reconcile(subscription, provider=provider, now=normalized_now, cache=cache)
        if not report.subscribed:
            downgraded += 1

    stats = {
        "checked": checked,
        "downgraded": downgraded,
        "timestamp": normalized_now.isoformat(),
    }
    logger.info("[reconcile] bulk run complete", extra=stats)
    return stats
