"""
RestGate Backend — Generic Resource Routes
==========================================

What:  The two catch-all endpoints every registered resource is served from.
Why:   Adding a resource means adding a model, two schemas and a registry
       entry; no per-resource route code is written.
How:   Resolve the route (404), authenticate (401), hand a DispatchRequest to
       the ResourceDispatcher, render its envelope via the ResponseFormatter.

Endpoints (mounted under the versioned prefix, e.g. /api/v1):
    GET    /{route}                  paginated list
    POST   /{route}                  create
    GET    /{route}/{resource_id}    read
    PUT    /{route}/{resource_id}    full update
    PATCH  /{route}/{resource_id}    partial update
    DELETE /{route}/{resource_id}    delete

    Every verb is accepted on both shapes; the dispatcher answers verbs that
    do not apply to a shape with the uniform 404.

Caching:
    Successful reads carry `Cache-Control: public, max-age=<cache_max_age>`
    and a strong ETag over the rendered body, so JSON and XML renditions of
    the same resource get different validators.
"""

import hashlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from restgate.dependencies import AppServices, get_services, require_session
from restgate.services.dispatcher import DispatchRequest
from restgate.services.route_registry import RouteEntry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Resources"])

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]
BODY_METHODS = {"POST", "PUT", "PATCH"}


def compute_etag(body: bytes) -> str:
    return '"%s"' % hashlib.sha1(body).hexdigest()


async def _serve(
    request: Request,
    services: AppServices,
    entry: RouteEntry,
    resource_id: Optional[str] = None,
) -> Response:
    method = request.method.upper()
    body = await request.body() if method in BODY_METHODS else b""

    result = await services.dispatcher.dispatch(
        DispatchRequest(
            method=method,
            route=entry.public_name,
            resource_id=resource_id,
            query=dict(request.query_params),
            body=body,
        )
    )

    rendered = services.formatter.render(
        result.payload, request.headers.get("accept"), result.status_code
    )
    headers = {}
    if result.cacheable:
        headers["Cache-Control"] = f"public, max-age={services.settings.cache_max_age}"
        headers["ETag"] = compute_etag(rendered.body)

    return Response(
        content=rendered.body,
        status_code=rendered.status_code,
        media_type=rendered.media_type,
        headers=headers,
    )


@router.api_route(
    "/{route}",
    methods=ALL_METHODS,
    summary="List or create resources",
)
async def collection_endpoint(
    request: Request,
    entry: RouteEntry = Depends(require_session),
    services: AppServices = Depends(get_services),
) -> Response:
    return await _serve(request, services, entry)


@router.api_route(
    "/{route}/{resource_id}",
    methods=ALL_METHODS,
    summary="Read, update or delete one resource",
)
async def resource_endpoint(
    resource_id: str,
    request: Request,
    entry: RouteEntry = Depends(require_session),
    services: AppServices = Depends(get_services),
) -> Response:
    return await _serve(request, services, entry, resource_id)
