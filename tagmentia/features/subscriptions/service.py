"""
tagmentia/features/subscriptions/service.py

Subscription lifecycle service.

Handles:
- Plan assignment (upsert on the user key: one subscription row per user)
- Status transitions (suspend, reactivate, cancel, expire)
- Subscription removal on account deletion

Every mutation accepts the application's LimitsCache and invalidates the
affected user so the next quota check sees the new plan immediately.
"""

from datetime import datetime, timezone
import logging
from typing import Optional, Union
from sqlalchemy import select, insert, update, delete

from tagmentia.core.database import get_db_session, user_subscriptions, plans
from tagmentia.core.errors import BillingUnavailableError, NotFoundError, ValidationError
from tagmentia.features.billing.provider import BillingProvider, BillingProviderError
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.plans.service import get_plan, get_default_plan
from tagmentia.models.subscription import BillingInterval, Cancellation, Subscription, SubscriptionStatus


logger = logging.getLogger(__name__)


def _invalidate(cache: Optional[LimitsCache], user_id: str) -> None:
    if cache is not None:
        cache.invalidate(user_id)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def subscription_from_row(row) -> Subscription:
    return Subscription(
        user_id=row.user_id,
        plan_id=row.plan_id,
        plan_name=getattr(row, "name", None),
        status=SubscriptionStatus(row.status),
        billing_interval=BillingInterval(row.billing_interval) if row.billing_interval else None,
        start_date=_as_utc(row.start_date),
        end_date=_as_utc(row.end_date),
        stripe_customer_id=row.stripe_customer_id,
        stripe_subscription_id=row.stripe_subscription_id,
        cancel_at_period_end=bool(getattr(row, "cancel_at_period_end", False)),
        plan_is_default=bool(getattr(row, "is_default", False)),
    )


def _subscription_query():
    return (
        select(user_subscriptions, plans.c.name, plans.c.is_default)
        .join(plans, plans.c.plan_id == user_subscriptions.c.plan_id)
    )


def get_subscription(user_id: str) -> Optional[Subscription]:
    """The user's subscription row regardless of status."""
    with get_db_session() as session:
        row = session.execute(
            _subscription_query().where(user_subscriptions.c.user_id == user_id)
        ).first()
        return subscription_from_row(row) if row else None


def get_active_subscription(user_id: str) -> Optional[Subscription]:
    """The user's active subscription joined with its plan name, if any."""
    with get_db_session() as session:
        row = session.execute(
            _subscription_query()
            .where(user_subscriptions.c.user_id == user_id)
            .where(user_subscriptions.c.status == SubscriptionStatus.ACTIVE.value)
        ).first()
        return subscription_from_row(row) if row else None


def list_active_subscriptions(limit: int = 100) -> list[Subscription]:
    with get_db_session() as session:
        rows = session.execute(
            _subscription_query()
            .where(user_subscriptions.c.status == SubscriptionStatus.ACTIVE.value)
            .order_by(user_subscriptions.c.id)
            .limit(limit)
        ).all()
        return [subscription_from_row(row) for row in rows]


def get_subscription_by_stripe_id(stripe_subscription_id: str) -> Optional[Subscription]:
    with get_db_session() as session:
        row = session.execute(
            _subscription_query().where(user_subscriptions.c.stripe_subscription_id == stripe_subscription_id)
        ).first()
        return subscription_from_row(row) if row else None


def assign_plan(
    user_id: str,
    plan_id: str,
    *,
    billing_interval: Optional[Union[BillingInterval, str]] = None,
    end_date: Optional[datetime] = None,
    stripe_customer_id: Optional[str] = None,
    stripe_subscription_id: Optional[str] = None,
    cache: Optional[LimitsCache] = None,
) -> Subscription:
    """
    Assign plan to user (creates or replaces the user's subscription row).

    The row is written with status active and a fresh start date.

    Raises:
        NotFoundError: If plan_id doesn't exist
        ValidationError: If billing_interval is not monthly/yearly
    """
    plan = get_plan(plan_id)
    if not plan:
        raise NotFoundError(f"Plan {plan_id} not found")

    interval = None
    if billing_interval is not None:
        try:
            interval = BillingInterval(billing_interval)
        except ValueError:
            raise ValidationError(f"Invalid billing interval: {billing_interval}")

    now = datetime.now(timezone.utc)
    values = dict(
        plan_id=plan_id,
        status=SubscriptionStatus.ACTIVE.value,
        billing_interval=interval.value if interval else None,
        start_date=now,
        end_date=end_date,
        stripe_customer_id=stripe_customer_id,
        stripe_subscription_id=stripe_subscription_id,
        cancel_at_period_end=False,
        updated_at=now,
    )

    with get_db_session() as session:
        existing = session.execute(
            select(user_subscriptions.c.id).where(user_subscriptions.c.user_id == user_id)
        ).first()

        if existing:
            session.execute(
                update(user_subscriptions)
                .where(user_subscriptions.c.user_id == user_id)
                .values(**values)
            )
        else:
            session.execute(
                insert(user_subscriptions).values(user_id=user_id, created_at=now, **values)
            )

    _invalidate(cache, user_id)
    logger.info("[subscriptions] plan assigned", extra={"user_id": user_id, "plan_id": plan_id})

    return Subscription(
        user_id=user_id,
        plan_id=plan_id,
        plan_name=plan.name,
        status=SubscriptionStatus.ACTIVE,
        billing_interval=interval,
        start_date=now,
        end_date=end_date,
        stripe_customer_id=stripe_customer_id,
        stripe_subscription_id=stripe_subscription_id,
        plan_is_default=plan.is_default,
    )


def assign_default_plan(user_id: str, *, cache: Optional[LimitsCache] = None) -> Subscription:
    default_plan = get_default_plan()
    if not default_plan:
        raise RuntimeError("No default plan configured. Run seed_plans() first.")

    return assign_plan(user_id, default_plan.plan_id, cache=cache)


def set_status(
    user_id: str,
    status: Union[SubscriptionStatus, str],
    *,
    cache: Optional[LimitsCache] = None,
) -> Subscription:
    """
    Move the user's subscription to a new status.

    Raises:
        NotFoundError: If the user has no subscription row
        ValidationError: If status is not a known subscription status
    """
    try:
        new_status = SubscriptionStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid subscription status: {status}")

    with get_db_session() as session:
        result = session.execute(
            update(user_subscriptions)
            .where(user_subscriptions.c.user_id == user_id)
            .values(status=new_status.value, updated_at=datetime.now(timezone.utc))
        )
        if result.rowcount == 0:
            raise NotFoundError(f"No subscription for user {user_id}")

    _invalidate(cache, user_id)
    logger.info("[subscriptions] status changed", extra={"user_id": user_id, "status": new_status.value})
    return get_subscription(user_id)


def suspend_subscription(user_id: str, *, cache: Optional[LimitsCache] = None) -> Subscription:
    return set_status(user_id, SubscriptionStatus.SUSPENDED, cache=cache)


def reactivate_subscription(user_id: str, *, cache: Optional[LimitsCache] = None) -> Subscription:
    return set_status(user_id, SubscriptionStatus.ACTIVE, cache=cache)


def cancel_subscription(
    user_id: str,
    *,
    provider: Optional[BillingProvider] = None,
    cache: Optional[LimitsCache] = None,
    now: Optional[datetime] = None,
) -> Cancellation:
    """
    Cancel the user's paid subscription.

    A Stripe-backed subscription is set to cancel at the end of the current
    billing period: the provider stops renewing it, the row keeps its plan
    until end_date and is then expired by reconciliation. Any other paid
    subscription (manual, promotional) ends now and the user moves to the
    default plan.

    Raises:
        NotFoundError: No active subscription, or only the default plan
        BillingUnavailableError: The provider could not be told to stop renewing
    """
    subscription = get_active_subscription(user_id)
    if subscription is None or subscription.plan_is_default:
        raise NotFoundError("No active subscription found")
    now = now or datetime.now(timezone.utc)

    if not subscription.stripe_subscription_id:
        default = assign_default_plan(user_id, cache=cache)
        logger.info(
            "[subscriptions] canceled immediately",
            extra={"user_id": user_id, "previous_plan_id": subscription.plan_id},
        )
        return Cancellation(
            user_id=user_id, status="canceled", plan_id=default.plan_id, access_until=now, at_period_end=False
        )

    if provider is None:
        raise BillingUnavailableError("Billing is not configured; the subscription cannot be canceled")
    try:
        live = provider.cancel_at_period_end(subscription.stripe_subscription_id)
    except BillingProviderError as e:
        logger.error(
            "[subscriptions] provider cancel failed",
            extra={"user_id": user_id, "stripe_subscription_id": subscription.stripe_subscription_id, "error": str(e)},
        )
        raise BillingUnavailableError("The billing provider could not cancel the subscription") from e

    access_until = live.current_period_end or subscription.end_date or now
    with get_db_session() as session:
        session.execute(
            update(user_subscriptions)
            .where(user_subscriptions.c.user_id == user_id)
            .values(cancel_at_period_end=True, end_date=access_until, updated_at=now)
        )

    _invalidate(cache, user_id)
    logger.info(
        "[subscriptions] cancellation scheduled",
        extra={"user_id": user_id, "access_until": access_until.isoformat()},
    )
    return Cancellation(
        user_id=user_id,
        status="canceling",
        plan_id=subscription.plan_id,
        access_until=access_until,
        at_period_end=True,
    )


def extend_subscription(stripe_subscription_id: str, *, cache: Optional[LimitsCache] = None) -> Optional[Subscription]:
    """
    Push end_date forward by one billing interval and mark active (renewal).

    A subscription with a scheduled cancellation is left as it is.
    """
    subscription = get_subscription_by_stripe_id(stripe_subscription_id)
    if not subscription:
        return None
    if subscription.cancel_at_period_end:
        logger.warning(
            "[subscriptions] renewal ignored, cancellation scheduled",
            extra={"user_id": subscription.user_id, "stripe_subscription_id": stripe_subscription_id},
        )
        return subscription

    base = subscription.end_date or datetime.now(timezone.utc)
    new_end = add_interval(base, subscription.billing_interval or BillingInterval.MONTHLY)

    with get_db_session() as session:
        session.execute(
            update(user_subscriptions)
            .where(user_subscriptions.c.stripe_subscription_id == stripe_subscription_id)
            .values(
                end_date=new_end,
                status=SubscriptionStatus.ACTIVE.value,
                updated_at=datetime.now(timezone.utc),
            )
        )

    _invalidate(cache, subscription.user_id)
    return get_subscription(subscription.user_id)


def delete_subscription(user_id: str, *, cache: Optional[LimitsCache] = None) -> bool:
    """Hard-delete the user's subscription (account deletion only)."""
    with get_db_session() as session:
        result = session.execute(
            delete(user_subscriptions).where(user_subscriptions.c.user_id == user_id)
        )
    _invalidate(cache, user_id)
    return result.rowcount > 0


def add_interval(start: datetime, interval: Union[BillingInterval, str]) -> datetime:
    """Same day next month (clamped to month end) or same day next year."""
    interval = BillingInterval(interval)
    if interval is BillingInterval.YEARLY:
        try:
            return start.replace(year=start.year + 1)
        except ValueError:
            # Feb 29 -> Feb 28
            return start.replace(year=start.year + 1, day=28)

    year = start.year + (start.month // 12)
    month = start.month % 12 + 1
    day = start.day
    while True:
        try:
            return start.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1
