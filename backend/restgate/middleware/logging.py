"""
RestGate Backend — Request Logging Middleware
=============================================

What:  One access log line per HTTP request.
Why:   Status and latency per route, correlated by request ID.
How:   Time the downstream call and log on the `restgate.access` logger.
When:  Inside RequestIDMiddleware, so the request ID is already set.

Log line:
    GET /api/v1/post 200 12.3ms [a1b2c3d4] from 10.0.0.7

    Level follows the status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
    Request bodies and auth headers are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from restgate.middleware.request_id import request_id_var

logger = logging.getLogger("restgate.access")

# Polled by load balancers; logging them buries real traffic
SILENT_PATHS = {"/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in SILENT_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        rid = request_id_var.get("")
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
