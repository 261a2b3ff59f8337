"""
Admin authentication for plan and subscription controls.

Admin routes require the shared X-Admin-Key header. The expected key comes
from the ADMIN_API_KEY env var, falling back to settings.ADMIN_KEY. When
neither is set every admin route answers 503.
"""
import hashlib
import hmac
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from tagmentia.core.config import settings


@dataclass(frozen=True)
class AdminActor:
    actor_id: str  # "key:<sha256 prefix>", safe to log
    actor_display: str = "Admin Key"


def get_admin_api_key() -> Optional[str]:
    return os.getenv("ADMIN_API_KEY") or settings.ADMIN_KEY


def verify_admin_key(request: Request) -> Optional[AdminActor]:
    """AdminActor when X-Admin-Key matches the configured key, else None."""
    configured = get_admin_api_key()
    presented = request.headers.get("X-Admin-Key", "").strip()
    if not configured or not presented:
        return None
    if not hmac.compare_digest(presented.encode(), configured.encode()):
        return None
    fingerprint = hashlib.sha256(presented.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"key:{fingerprint}")


def require_admin(request: Request) -> AdminActor:
    """FastAPI dependency guarding every /v1/admin route."""
    if not get_admin_api_key():
        raise HTTPException(
            status_code=503,
            detail={"code": "admin_auth_unconfigured", "error": "Set ADMIN_API_KEY or ADMIN_KEY to enable admin routes"},
        )

    actor = verify_admin_key(request)
    if actor is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "admin_unauthorized", "error": "Missing or invalid X-Admin-Key"},
        )
    return actor
