"""
ArchiRoutes Backend: Request ID Middleware
===========================================

What:  Assigns a short ID to each incoming request and returns it in the
       X-Request-ID response header.
How:   Uses the client's X-Request-ID when present, otherwise a fresh UUID
       prefix. The ID is stored in a ContextVar (for loggers and exception
       handlers) and in request.state (for route handlers).
When:  Runs before the logging middleware, so access logs can carry the ID.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # 8 characters are enough to correlate log lines of one request
        rid = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
