# Middleware package init
"""
RestGate Backend — Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [CORS] → [Rate Limit] → [Request ID] → [Logging] → [GZip] → Router

    1. CORS answers preflight requests before anything is counted
    2. Rate Limit rejects abusive clients before any auth or database work
    3. Request ID sets the correlation ID the access log and handlers use
    4. Logging records status and duration for everything behind it

    Auth is not middleware: it is a route dependency that runs after route
    resolution, so an unknown route yields 404 before credentials are checked.
"""

from restgate.middleware.logging import RequestLoggingMiddleware
from restgate.middleware.rate_limit import RateLimitMiddleware
from restgate.middleware.request_id import RequestIDMiddleware, request_id_var

__all__ = [
    "RateLimitMiddleware",
    "RequestIDMiddleware",
    "RequestLoggingMiddleware",
    "request_id_var",
]
