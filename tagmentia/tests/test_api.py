"""
HTTP surface: limits, subscription, admin, webhook and health routes.
"""
import inspect
import time
from datetime import datetime, timezone
import jwt
import pytest
from unittest.mock import Mock
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

import tagmentia.api.admin as admin_api
import tagmentia.api.billing as billing_api
import tagmentia.api.subscriptions as subscriptions_api
from tagmentia.core.config import settings
from tagmentia.features.billing.provider import BillingWebhookError, BillingWebhookResult, ProviderSubscription
from tagmentia.features.subscriptions.service import assign_plan, get_subscription
from tagmentia.main import app, install_limits

client = TestClient(app)

ADMIN_KEY = "admin-secret"


@pytest.fixture(autouse=True)
def fresh_limits():
    """Each test gets its own limits cache on the shared app."""
    return install_limits(app)


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", ADMIN_KEY)
    return {"X-Admin-Key": ADMIN_KEY}


def _as(user_id: str) -> dict:
    return {"X-User-Id": user_id}


# Auth

def test_requires_authentication():
    resp = client.get("/v1/limits")
    assert resp.status_code == 401


def test_supabase_jwt(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", "jwt-secret")
    token = jwt.encode(
        {"sub": "jwt-user", "aud": "authenticated", "exp": int(time.time()) + 60},
        "jwt-secret",
        algorithm="HS256",
    )

    resp = client.get("/v1/limits", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.json()["plan_id"] == "free"
    assert get_subscription("jwt-user").plan_id == "free"


def test_invalid_jwt_rejected(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", "jwt-secret")
    token = jwt.encode({"sub": "x", "aud": "authenticated"}, "wrong-secret", algorithm="HS256")

    resp = client.get("/v1/limits", headers={"Authorization": f"Bearer {token}", **_as("fallback")})

    assert resp.status_code == 401


# Limits

def test_get_limits_free_plan():
    resp = client.get("/v1/limits", headers=_as("alice"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["plan_name"] == "Free Plan"
    assert body["max_categories"] == 3
    assert body["max_videos_per_category"] == 10
    assert body["ai_summary_enabled"] is False
    assert body["current_categories"] == 0


def test_get_limits_gold_renders_unlimited(admin_key):
    client.get("/v1/limits", headers=_as("alice"))
    client.post("/v1/admin/users/alice/plan", json={"plan_id": "gold"}, headers=admin_key)

    body = client.get("/v1/limits", headers=_as("alice")).json()

    assert body["max_categories"] == -1
    assert body["storage_quota_mb"] == -1
    assert body["ai_summary_enabled"] is True


def test_check_category_denied_at_ceiling(make_user, owned_rows):
    make_user("alice")
    for _ in range(3):
        owned_rows.category("alice")

    resp = client.post("/v1/limits/check", json={"feature": "categories"}, headers=_as("alice"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["allowed"] is False
    assert body["current_usage"] == 3
    assert body["limit"] == 3


def test_check_videos_requires_category():
    resp = client.post("/v1/limits/check", json={"feature": "videos"}, headers=_as("alice"))
    assert resp.json() == {
        "allowed": False,
        "reason": "Category ID required for video addition check",
        "current_usage": None,
        "limit": None,
    }


def test_check_unknown_feature():
    resp = client.post("/v1/limits/check", json={"feature": "podcasts"}, headers=_as("alice"))
    assert resp.json()["allowed"] is False
    assert resp.json()["reason"] == "Unknown feature"


def test_enforce_allows(make_user):
    make_user("alice")
    resp = client.post("/v1/limits/enforce", json={"feature": "categories"}, headers=_as("alice"))
    assert resp.status_code == 200
    assert resp.json()["allowed"] is True


def test_enforce_denial_is_quota_exceeded(make_user, owned_rows):
    make_user("alice")
    for _ in range(3):
        owned_rows.category("alice")

    resp = client.post("/v1/limits/enforce", json={"feature": "categories"}, headers=_as("alice"))

    assert resp.status_code == 403
    error = resp.json()["error"]
    assert error["code"] == "quota_exceeded"
    assert error["current_usage"] == 3
    assert error["limit"] == 3
    assert error["requires_upgrade"] is True


def test_enforce_rejects_unknown_feature():
    resp = client.post("/v1/limits/enforce", json={"feature": "podcasts"}, headers=_as("alice"))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_storage_quota():
    body = client.get("/v1/storage/quota", headers=_as("alice")).json()
    assert body["quota_mb"] == 100
    assert body["used_bytes"] == 0
    assert body["is_unlimited"] is False


# Subscription

def test_subscription_status(monkeypatch):
    monkeypatch.setattr(subscriptions_api, "get_provider", lambda: None)
    body = client.get("/v1/subscription/status", headers=_as("alice")).json()
    assert body["subscribed"] is True
    assert body["plan"] == "Free Plan"


def test_cancel_manual_plan_then_cancel_again(make_user):
    make_user("alice")
    assign_plan("alice", "premium")

    first = client.post("/v1/subscription/cancel", headers=_as("alice"))
    assert first.status_code == 200
    assert first.json()["status"] == "canceled"
    assert first.json()["plan_id"] == "free"

    second = client.post("/v1/subscription/cancel", headers=_as("alice"))
    assert second.status_code == 404
    assert second.json()["error"]["code"] == "not_found"


def test_cancel_stripe_plan_keeps_access(monkeypatch, make_user):
    make_user("alice")
    assign_plan("alice", "gold", billing_interval="monthly", stripe_subscription_id="sub_1")
    provider = Mock()
    provider.cancel_at_period_end.return_value = ProviderSubscription(
        reference="sub_1", status="active", current_period_end=datetime(2030, 1, 1, tzinfo=timezone.utc)
    )
    monkeypatch.setattr(subscriptions_api, "get_provider", lambda: provider)

    resp = client.post("/v1/subscription/cancel", headers=_as("alice"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "canceling"
    assert body["plan_id"] == "gold"
    assert body["access_until"].startswith("2030-01-01")
    assert get_subscription("alice").cancel_at_period_end is True


def test_cancel_stripe_plan_without_billing(monkeypatch, make_user):
    make_user("alice")
    assign_plan("alice", "gold", stripe_subscription_id="sub_1")
    monkeypatch.setattr(subscriptions_api, "get_provider", lambda: None)

    resp = client.post("/v1/subscription/cancel", headers=_as("alice"))

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "billing_unavailable"


# Plans

def test_list_plans():
    resp = client.get("/v1/plans")

    assert resp.status_code == 200
    plans = resp.json()
    assert [p["plan_id"] for p in plans] == ["free", "premium", "gold"]
    assert plans[0]["is_default"] is True
    assert plans[2]["max_categories"] == -1
    assert plans[1]["price_monthly"] == 4.99


# Admin

def test_admin_requires_key(admin_key):
    resp = client.post("/v1/admin/cache/reset", headers={"X-Admin-Key": "wrong"})
    assert resp.status_code == 401


def test_admin_unconfigured(monkeypatch):
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    monkeypatch.setattr(settings, "ADMIN_KEY", None)
    resp = client.post("/v1/admin/cache/reset", headers={"X-Admin-Key": "anything"})
    assert resp.status_code == 503


def test_admin_plan_change_is_visible_immediately(admin_key, make_user, owned_rows):
    make_user("alice")
    for _ in range(3):
        owned_rows.category("alice")
    assert client.post("/v1/limits/check", json={"feature": "categories"}, headers=_as("alice")).json()["allowed"] is False

    resp = client.post(
        "/v1/admin/users/alice/plan",
        json={"plan_id": "premium", "billing_interval": "monthly"},
        headers=admin_key,
    )

    assert resp.status_code == 200
    assert resp.json()["plan_id"] == "premium"
    assert client.post("/v1/limits/check", json={"feature": "categories"}, headers=_as("alice")).json()["allowed"] is True


def test_admin_unknown_plan(admin_key, make_user):
    make_user("alice")
    resp = client.post("/v1/admin/users/alice/plan", json={"plan_id": "platinum"}, headers=admin_key)
    assert resp.status_code == 404


def test_admin_suspend_and_reactivate(admin_key, make_user):
    make_user("alice")
    assert client.post("/v1/admin/users/alice/suspend", headers=admin_key).json()["status"] == "suspended"
    assert client.post("/v1/admin/users/alice/reactivate", headers=admin_key).json()["status"] == "active"


def test_admin_cache_reset(admin_key, fresh_limits):
    client.get("/v1/limits", headers=_as("alice"))
    assert "alice" in fresh_limits

    resp = client.post("/v1/admin/cache/reset", headers=admin_key)

    assert resp.json() == {"success": True, "cleared": 1}
    assert len(fresh_limits) == 0


def test_admin_reconcile(admin_key, make_user, monkeypatch):
    monkeypatch.setattr(admin_api, "get_provider", lambda: None)
    make_user("alice")
    make_user("bob")

    body = client.post("/v1/admin/subscriptions/reconcile", headers=admin_key).json()

    assert body["checked"] == 2
    assert body["downgraded"] == 0


def test_admin_delete_account(admin_key, make_user):
    make_user("alice")

    assert client.delete("/v1/admin/users/alice", headers=admin_key).json() == {"success": True, "user_id": "alice"}
    assert get_subscription("alice") is None
    assert client.delete("/v1/admin/users/alice", headers=admin_key).status_code == 404


# Webhook

def test_webhook_billing_disabled(monkeypatch):
    monkeypatch.setattr(billing_api, "billing_enabled", lambda: False)
    resp = client.post("/api/billing/webhook", content=b"{}")
    assert resp.status_code == 503


def test_webhook_processes_event(monkeypatch, make_user):
    make_user("alice")
    provider = Mock()
    provider.handle_webhook.return_value = BillingWebhookResult(
        event_id="evt_1",
        event_type="checkout.session.completed",
        user_id="alice",
        subscription_id="sub_1",
        customer_id="cus_1",
        plan_id="gold",
        billing_interval="yearly",
        status=None,
        current_period_end=None,
    )
    monkeypatch.setattr(billing_api, "billing_enabled", lambda: True)
    monkeypatch.setattr(billing_api, "get_provider", lambda: provider)

    resp = client.post("/api/billing/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "event_id": "evt_1"}
    assert get_subscription("alice").plan_id == "gold"


def test_webhook_rejects_bad_signature(monkeypatch):
    provider = Mock()
    provider.handle_webhook.side_effect = BillingWebhookError("Invalid signature")
    monkeypatch.setattr(billing_api, "billing_enabled", lambda: True)
    monkeypatch.setattr(billing_api, "get_provider", lambda: provider)

    resp = client.post("/api/billing/webhook", content=b"{}")

    assert resp.status_code == 400


# Health

def test_healthz():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert "x-request-id" in resp.headers


# Threading

def test_database_routes_run_in_threadpool():
    """Routes that hit the database or Stripe are sync so they never block the event loop."""
    async_routes = {
        route.path
        for route in app.routes
        if isinstance(route, APIRoute) and inspect.iscoroutinefunction(route.endpoint)
    }
    assert async_routes <= {"/api/billing/webhook"}


def test_first_request_creates_user_off_the_event_loop(monkeypatch):
    import tagmentia.core.auth as auth

    calls = []

    async def fake_threadpool(func, *args):
        calls.append((func.__name__, args))
        return func(*args)

    monkeypatch.setattr(auth, "run_in_threadpool", fake_threadpool)

    resp = client.get("/v1/limits", headers=_as("newcomer"))

    assert resp.status_code == 200
    assert ("get_or_create_user", ("newcomer",)) in calls
    assert get_subscription("newcomer").plan_id == "free"
