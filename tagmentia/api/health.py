"""
Health endpoints for operational monitoring (no secrets exposed).
"""

import logging
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from tagmentia.core.database import check_connection

logger = logging.getLogger("tagmentia")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Liveness plus a database round trip."""
    if not check_connection():
        logger.error("[healthz] database unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
    return {"status": "ok"}
