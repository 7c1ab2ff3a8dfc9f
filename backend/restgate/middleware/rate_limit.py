"""
RestGate Backend — Rate Limiting Middleware
===========================================

What:  Applies the RateLimitGate to every request ahead of routing.
Why:   Abusive clients are turned away before auth lookups or database work.
How:   Consume one point for the client IP; on admission stamp the budget
       headers on the response, on rejection short-circuit with 429.
Who:   Registered by `create_app()` with the gate built in `build_services()`.
When:  Outermost application middleware (runs before routing).

Headers on admission (production only):
    X-RateLimit-Limit      points per window
    X-RateLimit-Remaining  points left in the current window
    X-RateLimit-Reset      HTTP date at which the oldest counted request expires
    Retry-After            whole seconds until that expiry (at least 1)

Rejection:
    HTTP 429, Retry-After: whole seconds (at least 1)
    Body: {"status": "too many requests, please try again later",
           "timestamp": ..., "retryAfter": <seconds, fractional>,
           "ip": <client key>}
    Rendered through the ResponseFormatter, so XML clients get XML.
"""

import logging
import time
from email.utils import formatdate

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from restgate.schemas.envelope import StatusEnvelope, utc_timestamp
from restgate.services.rate_limiter import RateLimitGate, Rejected, client_key_from
from restgate.services.response_formatter import ResponseFormatter

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "too many requests, please try again later"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Excluded paths:
        - /docs, /redoc, /openapi.json: API documentation stays reachable
    """

    EXCLUDED_PATHS = {"/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, gate: RateLimitGate, formatter: ResponseFormatter):
        super().__init__(app)
        self.gate = gate
        self.formatter = formatter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_key = client_key_from(request.client.host if request.client else None)
        decision = await self.gate.admit(client_key)

        if isinstance(decision, Rejected):
            envelope = StatusEnvelope(
                status=TOO_MANY_REQUESTS,
                timestamp=utc_timestamp(),
                retry_after=decision.retry_after_ms / 1000,
                ip=client_key,
            )
            return self.formatter.to_response(
                envelope,
                accept_header=request.headers.get("accept"),
                status_code=429,
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )

        response = await call_next(request)

        if not decision.bypassed:
            reset_at = time.time() + decision.reset_after_ms / 1000
            response.headers["X-RateLimit-Limit"] = str(decision.limit)
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
            response.headers["X-RateLimit-Reset"] = formatdate(reset_at, usegmt=True)
            response.headers["Retry-After"] = str(decision.reset_after_seconds)

        return response
