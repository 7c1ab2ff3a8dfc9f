"""
RestGate Backend — Session Probe Route
======================================

What:  GET /api/auth/session returns the caller's current session and user.
Why:   Lets a client check whether its cookie or bearer token is still valid
       without touching a resource route.

    valid session → 200 {"session": {...}, "user": {...}}
    otherwise     → 401 {"status": "unauthorized", ...}

The session token itself is never echoed back.
"""

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from restgate.dependencies import AppServices, get_services
from restgate.exceptions import UnauthenticatedError

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.get("/session", summary="Current session")
async def current_session(
    request: Request,
    services: AppServices = Depends(get_services),
) -> Response:
    auth = await services.auth_gate.authenticate(request.headers)
    if auth is None:
        raise UnauthenticatedError(context={"path": request.url.path})

    return services.formatter.to_response(
        {"session": auth.session, "user": auth.user},
        accept_header=request.headers.get("accept"),
    )
