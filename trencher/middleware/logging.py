"""
Trencher — Request Logging Middleware
=======================================

What:  One access-log line per request: method, path, status, duration,
       request ID and client IP.
How:   Measures time around ``call_next`` and picks the level from the
       status code (5xx → ERROR, 4xx → WARNING, otherwise INFO).
When:  Installed by ``install_trencher``, inside ``RequestIDMiddleware``
       so the request ID is already set.

Request bodies, uploaded files and auth headers are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from trencher.middleware.request_id import request_id_var

logger = logging.getLogger("trencher.access")


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each HTTP request with its outcome and duration."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        rid = request_id_var.get("")
        logger.log(
            level_for_status(status),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
