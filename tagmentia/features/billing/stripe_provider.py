"""
BillingProvider backed by Stripe.

Live subscription lookups go through the stripe SDK with a request timeout
and no retries; webhooks are verified against STRIPE_WEBHOOK_SECRET.
"""
import json
import os
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import stripe

from tagmentia.core.config import settings
from tagmentia.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
    ProviderSubscription,
    STATUS_NOT_FOUND,
)


class StripeProvider:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Configure the stripe SDK for this process.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY)
            webhook_secret: Stripe webhook secret (defaults to STRIPE_WEBHOOK_SECRET)
            timeout_seconds: Per-request timeout (defaults to BILLING_PROVIDER_TIMEOUT_SECONDS)
        """
        self.secret_key = secret_key or os.getenv("STRIPE_SECRET_KEY") or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET") or settings.STRIPE_WEBHOOK_SECRET
        self.timeout_seconds = timeout_seconds or settings.BILLING_PROVIDER_TIMEOUT_SECONDS

        if not self.secret_key or not self.secret_key.startswith("sk_"):
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout_seconds)

    def get_subscription_status(self, reference: str) -> ProviderSubscription:
        """Retrieve the Stripe subscription; a missing one reports not_found."""
        try:
            subscription = stripe.Subscription.retrieve(reference)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                return ProviderSubscription(reference=reference, status=STATUS_NOT_FOUND)
            raise BillingProviderError(f"Stripe subscription lookup failed: {e}")
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription lookup failed: {e}")

        return _snapshot(reference, subscription)

    def cancel_at_period_end(self, reference: str) -> ProviderSubscription:
        """Stop renewal; Stripe keeps the subscription active until current_period_end."""
        try:
            subscription = stripe.Subscription.modify(reference, cancel_at_period_end=True)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe cancellation failed: {e}") from e
        return _snapshot(reference, subscription)

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Check the stripe-signature header against the raw body, then parse."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")
        signature = next((v for k, v in headers.items() if k.lower() == "stripe-signature"), None)
        if not signature:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}") from e
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}") from e
        return parse_event(json.loads(body))


def _from_timestamp(value: Any) -> Optional[datetime]:
    return datetime.fromtimestamp(int(value), tz=timezone.utc) if value else None


def _snapshot(reference: str, subscription: Any) -> ProviderSubscription:
    return ProviderSubscription(
        reference=reference,
        status=getattr(subscription, "status", None) or STATUS_NOT_FOUND,
        current_period_end=_from_timestamp(getattr(subscription, "current_period_end", None)),
    )


def _str_or_none(value: Any) -> Optional[str]:
    # expanded objects arrive as dicts; only plain ids are kept
    return value if isinstance(value, str) else None


# Where each handled event type keeps the subscription id on its data object
_SUBSCRIPTION_ID_FIELD = {
    "checkout.session.completed": "subscription",
    "invoice.payment_succeeded": "subscription",
}


def parse_event(event: Dict[str, Any]) -> BillingWebhookResult:
    """Flatten a Stripe event dict into a BillingWebhookResult."""
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise BillingWebhookError("Event is missing id or type")

    kind = event["type"]
    obj = (event.get("data") or {}).get("object") or {}
    metadata = dict(obj.get("metadata") or {})
    is_subscription_event = kind.startswith("customer.subscription.")

    if is_subscription_event:
        subscription_ref = obj.get("id")
    else:
        subscription_ref = obj.get(_SUBSCRIPTION_ID_FIELD.get(kind, "subscription"))

    return BillingWebhookResult(
        event_id=event["id"],
        event_type=kind,
        user_id=metadata.get("user_id"),
        subscription_id=_str_or_none(subscription_ref),
        customer_id=_str_or_none(obj.get("customer")),
        plan_id=metadata.get("plan_id"),
        billing_interval=metadata.get("billing_interval"),
        status=obj.get("status") if is_subscription_event else None,
        current_period_end=_from_timestamp(obj.get("current_period_end")) if is_subscription_event else None,
        metadata=metadata,
    )
