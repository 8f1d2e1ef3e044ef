"""
HTTP request logging middleware.

Binds a request id for every call and logs method, path, status and
duration once the response is produced. Health probes log at debug.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

QUIET_PATHS = frozenset({"/healthz"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with a request id, timing and status."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        path = request.url.path
        start = time.perf_counter()
        status_code = 500

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                status_code = response.status_code
                response.headers["x-request-id"] = request_id
                return response
            finally:
                duration_ms = round((time.perf_counter() - start) * 1000, 1)

                if status_code >= 500:
                    log = logger.error
                elif status_code >= 400:
                    log = logger.warning
                elif path in QUIET_PATHS:
                    log = logger.debug
                else:
                    log = logger.info

                # Query strings can carry wallet addresses; only the path is logged
                log(
                    "http_request",
                    method=request.method,
                    path=path,
                    status=status_code,
                    duration_ms=duration_ms,
                )
