"""
Request authentication for the Tagmentia API.

Validates Supabase access tokens (HS256, signed with the project's JWT
secret) and extracts the user id from the `sub` claim. Falls back to the
X-User-Id header when no bearer token is sent (local development, tests).
"""
import logging
from typing import Optional

import jwt
from fastapi import Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from tagmentia.core.config import settings
from tagmentia.core.logging import bind_user_id

logger = logging.getLogger(__name__)


def _unauthorized(reason: str) -> HTTPException:
    return HTTPException(status_code=401, detail=reason)


def verify_supabase_jwt(token: str) -> Optional[str]:
    """
    Return the `sub` claim of a valid Supabase access token.

    Returns None when SUPABASE_JWT_SECRET is unset so callers can fall back
    to the X-User-Id header. Raises a 401 HTTPException for expired or
    malformed tokens and for tokens without a subject.
    """
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        return None

    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"], audience=settings.SUPABASE_JWT_AUDIENCE)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug("[auth] rejected token: %s", e.__class__.__name__)
        raise _unauthorized("Invalid token")

    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Invalid token")
    return subject


async def _ensure_user(user_id: str) -> None:
    bind_user_id(user_id)
    try:
        from tagmentia.features.users.service import get_or_create_user
        await run_in_threadpool(get_or_create_user, user_id)
    except Exception as e:
        # limit checks fall back to the default plan
        logger.warning("[auth] user upsert failed: %s", e.__class__.__name__, extra={"user_id": user_id})


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development fallback: user ID"),
) -> str:
    """
    Resolve the caller: a Supabase bearer token first, then X-User-Id.

    The user row (and its default subscription) is created on first sight.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    user_id = verify_supabase_jwt(token.strip()) if scheme == "Bearer" and token.strip() else None
    user_id = user_id or x_user_id

    if not user_id:
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthorized", "message": "Send a Bearer token or an X-User-Id header"},
        )
    await _ensure_user(user_id)
    return user_id
