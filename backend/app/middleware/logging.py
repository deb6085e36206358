"""
ArchiRoutes Backend: Request Logging Middleware
================================================

What:  One access-log line per HTTP request, with method, path, status,
       duration and request ID.
Who:   Applied to every request except /health.

Log levels follow the status code: 5xx ERROR, 4xx WARNING, otherwise INFO.
Request bodies are never logged (building names and coordinates stay out
of access logs).

Typical durations:
    GET  /health                          1-5ms
    GET  /api/buildings/similar           5-30ms (indexed name search)
    POST /api/buildings/duplicates/check  10-80ms (stored function)
    POST /api/routes/build                200-2000ms with a provider, <5ms straight-line
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("archiroutes.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        if path == "/health":
            return await call_next(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
