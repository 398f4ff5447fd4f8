"""
Trencher — Request ID Middleware
==================================

What:  Tags every request with an ID and echoes it in ``X-Request-ID``.
How:   Reuses the client's ``X-Request-ID`` header when present, otherwise
       generates a short UUID. The ID is stored in a ContextVar (read by the
       access log and the error handlers) and on ``request.state``.
When:  Installed by ``install_trencher``; runs before route chains.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests in one thread each see their own ID.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a correlation ID to each request and response."""

    header_name = "X-Request-ID"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(self.header_name) or str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers[self.header_name] = rid
        return response
