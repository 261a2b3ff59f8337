"""
tagmentia/models/subscription.py

Subscription model: links a user to one plan.

Constraint: each user has at most one subscription row, and therefore at
most one active subscription.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELED = "canceled"
    EXPIRED = "expired"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Subscription(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan_id: str
    plan_name: Optional[str] = None
    status: SubscriptionStatus
    billing_interval: Optional[BillingInterval] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    cancel_at_period_end: bool = False
    plan_is_default: bool = False


class Cancellation(BaseModel):
    """Outcome of a user-initiated cancel."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    status: str  # "canceling": ends at access_until; "canceled": moved to the default plan now
    plan_id: str
    access_until: datetime
    at_period_end: bool

    @property
    def message(self) -> str:
        if self.at_period_end:
            return f"Subscription cancellation scheduled. Access continues until {self.access_until.date().isoformat()}."
        return "Subscription canceled. You have been moved to the Free Plan."


class SubscriptionStatusReport(BaseModel):
    """What the reconciler tells the UI about the user's subscription."""
    model_config = ConfigDict(frozen=True)

    subscribed: bool
    plan: str = "Free Plan"
    billing_interval: Optional[BillingInterval] = None
    end_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    cancel_at_period_end: bool = False

    @classmethod
    def not_subscribed(cls) -> "SubscriptionStatusReport":
        return cls(subscribed=False, plan="Free Plan")
