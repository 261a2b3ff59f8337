"""
Billing API routes.

- POST /api/billing/webhook: Handle Stripe webhooks
"""
from fastapi import APIRouter, Depends, Request, HTTPException
from starlette.concurrency import run_in_threadpool

from tagmentia.api.limits import get_limits_cache
from tagmentia.core.logging import log_event
from tagmentia.features.billing.service import billing_enabled, get_provider, process_webhook_event
from tagmentia.features.billing.provider import BillingWebhookError
from tagmentia.features.limits.cache import LimitsCache


router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/webhook")
async def handle_webhook(request: Request, cache: LimitsCache = Depends(get_limits_cache)):
    """
    Handle Stripe webhook events.

    Verifies the signature (STRIPE_WEBHOOK_SECRET), dedupes on the Stripe
    event id (billing_events table) and updates the subscription row.

    Returns:
        {"received": true, "event_id": "..."}

    Errors:
        400: Invalid signature or payload
        503: Billing disabled
    """
    provider = get_provider() if billing_enabled() else None
    if provider is None:
        raise HTTPException(
            status_code=503,
            detail={"error": "Billing disabled", "code": "billing_disabled"},
        )

    # Raw body is required for signature verification
    body = await request.body()
    headers = dict(request.headers)

    try:
        result = await run_in_threadpool(process_webhook_event, headers, body, provider=provider, cache=cache)
    except BillingWebhookError as e:
        log_event("warning", "billing.webhook.rejected", error_code="invalid_webhook", extra={"error": str(e)})
        raise HTTPException(status_code=400, detail=str(e))

    log_event(
        "info",
        "billing.webhook.processed",
        user_id=result.user_id,
        event_type=result.event_type,
        extra={"event_id": result.event_id},
    )
    return {"received": True, "event_id": result.event_id}
