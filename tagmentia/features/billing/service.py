"""
Billing service orchestrator.

Coordinates:
- Provider construction (Stripe when configured, otherwise none)
- Webhook processing with event deduplication
- Applying provider events to the local subscription row

All Stripe-specific code is in stripe_provider.py.
"""
import logging
import os
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import select, insert, update

from tagmentia.core.config import settings
from tagmentia.core.database import get_db_session, billing_events, user_subscriptions
from tagmentia.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
)
from tagmentia.features.billing.stripe_provider import StripeProvider
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.subscriptions.service import (
    add_interval,
    assign_plan,
    extend_subscription,
    get_subscription_by_stripe_id,
)
from tagmentia.models.subscription import BillingInterval, SubscriptionStatus


logger = logging.getLogger(__name__)


def billing_enabled() -> bool:
    """Check if billing is enabled (Stripe configured)."""
    return bool(os.getenv("STRIPE_SECRET_KEY") or settings.STRIPE_SECRET_KEY)


def get_provider() -> Optional[BillingProvider]:
    """Get billing provider if billing is enabled."""
    if not billing_enabled():
        return None
    try:
        return StripeProvider()
    except BillingProviderError as e:
        logger.warning("[billing] provider unavailable", extra={"error": str(e)})
        return None


def _already_processed(event_id: str) -> bool:
    with get_db_session() as session:
        row = session.execute(
            select(billing_events.c.processed).where(billing_events.c.stripe_event_id == event_id)
        ).first()
        return bool(row and row.processed)


def _record_event(result: BillingWebhookResult) -> None:
    now = datetime.now(timezone.utc)
    with get_db_session() as session:
        existing = session.execute(
            select(billing_events.c.id).where(billing_events.c.stripe_event_id == result.event_id)
        ).first()
        if existing:
            session.execute(
                update(billing_events)
                .where(billing_events.c.id == existing.id)
                .values(processed=True, processed_at=now)
            )
        else:
            session.execute(
                insert(billing_events).values(
                    stripe_event_id=result.event_id,
                    event_type=result.event_type,
                    received_at=now,
                    processed=True,
                    processed_at=now,
                )
            )


def apply_subscription_state(result: BillingWebhookResult, *, cache: Optional[LimitsCache] = None) -> None:
    """
    Apply a parsed provider event to the local subscription row.

    Raises:
        BillingWebhookError: If a checkout event lacks the metadata needed
    """
    if result.event_type == "checkout.session.completed":
        if not result.user_id or not result.plan_id or not result.billing_interval:
            raise BillingWebhookError("Missing required metadata in checkout session")
        try:
            interval = BillingInterval(result.billing_interval)
        except ValueError:
            raise BillingWebhookError(f"Invalid billing interval: {result.billing_interval}")
        now = datetime.now(timezone.utc)
        assign_plan(
            result.user_id,
            result.plan_id,
            billing_interval=interval,
            end_date=add_interval(now, interval),
            stripe_customer_id=result.customer_id,
            stripe_subscription_id=result.subscription_id,
            cache=cache,
        )
        logger.info("[billing] subscription activated", extra={"user_id": result.user_id, "plan_id": result.plan_id})
        return

    if result.event_type == "invoice.payment_succeeded":
        if result.subscription_id:
            extended = extend_subscription(result.subscription_id, cache=cache)
            logger.info(
                "[billing] subscription extended",
                extra={"stripe_subscription_id": result.subscription_id, "found": extended is not None},
            )
        return

    if result.event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        if not result.subscription_id:
            return
        status = SubscriptionStatus.ACTIVE if result.status == "active" else SubscriptionStatus.CANCELED
        with get_db_session() as session:
            session.execute(
                update(user_subscriptions)
                .where(user_subscriptions.c.stripe_subscription_id == result.subscription_id)
                .values(status=status.value, updated_at=datetime.now(timezone.utc))
            )
        subscription = get_subscription_by_stripe_id(result.subscription_id)
        if subscription and cache is not None:
            cache.invalidate(subscription.user_id)
        logger.info(
            "[billing] subscription status updated",
            extra={"stripe_subscription_id": result.subscription_id, "status": status.value},
        )
        return

    logger.info("[billing] unhandled event type", extra={"event_type": result.event_type})


def process_webhook_event(
    headers: dict,
    body: bytes,
    *,
    provider: BillingProvider,
    cache: Optional[LimitsCache] = None,
) -> BillingWebhookResult:
    """
    Verify, dedupe and apply a webhook delivery.

    Replays of an already processed event id are acknowledged without
    being applied again.
    """
    result = provider.handle_webhook(headers, body)

    if _already_processed(result.event_id):
        logger.info("[billing] duplicate event ignored", extra={"event_id": result.event_id})
        return result

    apply_subscription_state(result, cache=cache)
    _record_event(result)
    return result
