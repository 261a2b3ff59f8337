"""
Application errors and the FastAPI handlers that render them.

Every error body has the same shape:

    {"error": {"code": ..., "message": ..., "request_id": ...}, "detail": message}

and the response echoes the request id in the x-request-id header.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from tagmentia.core.logging import get_request_id

logger = logging.getLogger("tagmentia")


class AppError(Exception):
    """Base for errors that map onto an HTTP status and a stable error code."""

    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or type(self).code
        self.status_code = status_code or type(self).status_code
        self.request_id = request_id

    def extra_payload(self) -> Dict[str, Any]:
        """Fields merged into the "error" object of the response body."""
        return {}


class ValidationError(AppError, ValueError):
    code, status_code = "validation_error", 400


class NotFoundError(AppError, ValueError):
    code, status_code = "not_found", 404


class QuotaExceededError(AppError):
    """A denied limit check turned into a hard failure."""

    code, status_code = "quota_exceeded", 403

    def __init__(self, message: str, *, current_usage: Optional[int] = None, limit: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_usage = current_usage
        self.limit = limit

    @classmethod
    def from_check(cls, check) -> "QuotaExceededError":
        return cls(check.reason or "Limit reached", current_usage=check.current_usage, limit=check.limit)

    def extra_payload(self) -> Dict[str, Any]:
        return {"current_usage": self.current_usage, "limit": self.limit, "requires_upgrade": True}


class LimitsUnavailableError(AppError):
    """Plan limits or usage counters could not be read."""

    code, status_code = "limits_unavailable", 503


class BillingUnavailableError(AppError):
    """The billing provider is not configured or did not answer."""

    code, status_code = "billing_unavailable", 503


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def _render(status: int, code: str, message: str, request_id: str, extra: Optional[dict] = None) -> JSONResponse:
    body = {"error": {"code": code, "message": message, "request_id": request_id, **(extra or {})}, "detail": message}
    return JSONResponse(status_code=status, content=body, headers={"x-request-id": request_id})


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _request_id_for(request)
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "[errors] %s", exc.code,
        extra={"request_id": rid, "error_code": exc.code, "status": exc.status_code},
    )
    return _render(exc.status_code, exc.code, exc.message, rid, exc.extra_payload())


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _request_id_for(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("[errors] http %s", exc.status_code, extra={"request_id": rid, "error_code": code})
    return _render(exc.status_code, code, exc.detail or "HTTP error", rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id_for(request)
    logger.error("[errors] unhandled %s", type(exc).__name__, exc_info=exc, extra={"request_id": rid})
    return _render(500, "internal_error", "Unexpected error", rid)
