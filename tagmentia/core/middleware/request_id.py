import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from tagmentia.core.logging import request_id_ctx_var, latency_bucket_ms

logger = logging.getLogger("tagmentia.http")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a request_id (echoed in the response) and log its outcome."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            logger.info(
                "[http] request complete",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
