"""
Error bodies rendered by the application handlers.
"""
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from tagmentia.core.errors import (
    AppError,
    BillingUnavailableError,
    NotFoundError,
    QuotaExceededError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from tagmentia.models.limits import LimitCheck


def _client(exc: Exception) -> TestClient:
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/boom")
    def boom():
        raise exc

    return TestClient(app, raise_server_exceptions=False)


def test_not_found_shape():
    resp = _client(NotFoundError("User u1 not found")).get("/boom", headers={"x-request-id": "rid-1"})

    assert resp.status_code == 404
    body = resp.json()
    assert body["detail"] == "User u1 not found"
    assert body["error"]["code"] == "not_found"
    assert body["error"]["message"] == "User u1 not found"
    assert resp.headers["x-request-id"] == body["error"]["request_id"]


def test_billing_unavailable_is_503():
    resp = _client(BillingUnavailableError("Billing is not configured")).get("/boom")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "billing_unavailable"


def test_quota_exceeded_carries_usage():
    check = LimitCheck(allowed=False, reason="Category limit reached", current_usage=3, limit=3)

    resp = _client(QuotaExceededError.from_check(check)).get("/boom")

    assert resp.status_code == 403
    error = resp.json()["error"]
    assert error["code"] == "quota_exceeded"
    assert error["current_usage"] == 3
    assert error["limit"] == 3
    assert error["requires_upgrade"] is True


def test_code_override():
    err = AppError("teapot", code="teapot", status_code=418)
    assert err.code == "teapot"
    assert err.status_code == 418
    assert AppError.code == "app_error"


def test_http_exception_wrapped():
    resp = _client(HTTPException(status_code=401, detail="Missing credentials")).get("/boom")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "http_error"
    assert resp.json()["detail"] == "Missing credentials"


def test_unhandled_exception_hides_message():
    resp = _client(RuntimeError("db password leaked")).get("/boom")

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"
    assert "leaked" not in resp.text
