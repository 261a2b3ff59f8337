"""
What the reconciler and the webhook endpoint need from a payment processor.

StripeProvider is the only implementation; tests pass Mock objects shaped
like BillingProvider.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

STATUS_NOT_FOUND = "not_found"


class BillingProviderError(Exception):
    """Lookup failed: network, credentials or timeout."""


class BillingWebhookError(BillingProviderError):
    """Webhook body could not be verified or understood."""


@dataclass(frozen=True)
class ProviderSubscription:
    reference: str
    status: str  # provider vocabulary: active, past_due, canceled, not_found
    current_period_end: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class BillingWebhookResult:
    """A verified webhook event flattened to the fields subscription updates use."""
    event_id: str
    event_type: str
    user_id: Optional[str]
    subscription_id: Optional[str]
    customer_id: Optional[str]
    plan_id: Optional[str]
    billing_interval: Optional[str]
    status: Optional[str]
    current_period_end: Optional[datetime]
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    def get_subscription_status(self, reference: str) -> ProviderSubscription:
        """
        Live state of an external subscription.

        A reference the provider does not know comes back with
        status STATUS_NOT_FOUND. Transport failures raise
        BillingProviderError.
        """
        ...

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify the signature and parse; BillingWebhookError on either failure."""
        ...

    def cancel_at_period_end(self, reference: str) -> ProviderSubscription:
        """
        Stop renewing the subscription. It stays active until the returned
        current_period_end. Failures raise BillingProviderError.
        """
        ...
