"""
RestGate Backend — Health Check Route
=====================================

What:  Liveness/readiness probe for load balancers and container healthchecks.
How:   Runs `SELECT 1` through the session factory.

    database reachable    → 200 {"status": "ok", "timestamp": ...}
    database unreachable  → 503 {"status": "unavailable", "timestamp": ...}

Public: listed in PUBLIC_PATH_PREFIXES and skipped by the access log.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from starlette.responses import Response

from restgate.dependencies import AppServices, get_services
from restgate.schemas.envelope import StatusEnvelope, utc_timestamp

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/api/health", summary="Service health check")
async def health_check(
    request: Request,
    services: AppServices = Depends(get_services),
) -> Response:
    status, status_code = "ok", 200
    try:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        status, status_code = "unavailable", 503
        logger.warning("Health check: database unreachable: %s", e)

    return services.formatter.to_response(
        StatusEnvelope(status=status, timestamp=utc_timestamp()),
        accept_header=request.headers.get("accept"),
        status_code=status_code,
    )
