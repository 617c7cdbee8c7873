"""
HTTP middleware
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import uuid4
import logging
import time

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that tags every request with an X-Request-ID header
    and logs method, path, status and duration once the response is ready
    """

    # Paths too noisy to log
    QUIET_PATHS = ["/health"]

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        if request.url.path not in self.QUIET_PATHS:
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({duration_ms} ms) request_id={request_id}"
            )

        response.headers["X-Request-ID"] = request_id
        return response
