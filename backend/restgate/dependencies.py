"""
RestGate Backend — Service Wiring & FastAPI Dependencies
========================================================

What:  Builds every service once and exposes them to routes via Depends().
Why:   Dependencies are constructed explicitly, with clear ownership, instead
       of as ambient module-level clients; tests pass their own session
       factory, session provider or rate limit store to `create_app()`.
How:   `build_services()` returns an `AppServices` container that the app
       factory stores on `app.state.services`. Route dependencies read it
       back from `request.app.state`.

Gate ordering for resource routes:
    resolve_route  → 404 for an unregistered route segment
    require_session → 401 for a protected path without a session
    The session dependency depends on the route dependency, so an unknown
    route never reveals whether authentication would have been required.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Type

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from restgate.config import Settings
from restgate.database import Base, create_engine_from_settings, create_session_factory
from restgate.exceptions import UnauthenticatedError
from restgate.models import Comment, Post
from restgate.schemas.resources import build_schema_table
from restgate.services.auth_gate import AuthGate, DatabaseSessionProvider, SessionProvider
from restgate.services.dispatcher import ResourceDispatcher
from restgate.services.model_store import build_model_stores
from restgate.services.payload_validator import PayloadValidator
from restgate.services.query_params import QueryParser
from restgate.services.rate_limiter import InMemoryRateLimitStore, RateLimitGate, RateLimitStore
from restgate.services.response_formatter import ResponseFormatter
from restgate.services.route_registry import ResourceKey, RouteEntry, RouteRegistry

logger = logging.getLogger(__name__)

RESOURCE_MODELS: Dict[ResourceKey, Type[Base]] = {
    ResourceKey.POST: Post,
    ResourceKey.COMMENT: Comment,
}


@dataclass
class AppServices:
    settings: Settings
    engine: Optional[AsyncEngine]
    session_factory: async_sessionmaker[AsyncSession]
    registry: RouteRegistry
    dispatcher: ResourceDispatcher
    formatter: ResponseFormatter
    auth_gate: AuthGate
    rate_limit_gate: RateLimitGate


def build_services(
    settings: Settings,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    session_provider: Optional[SessionProvider] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> AppServices:
    """
    Construct the service graph.

    Raises:
        ConfigurationError: a registered route lacks a store or a schema
    """
    engine: Optional[AsyncEngine] = None
    if session_factory is None:
        engine = create_engine_from_settings(settings)
        session_factory = create_session_factory(engine)

    registry = RouteRegistry()
    dispatcher = ResourceDispatcher(
        registry=registry,
        stores=build_model_stores(RESOURCE_MODELS, session_factory),
        validator=PayloadValidator(build_schema_table()),
        parser=QueryParser(
            default_limit=settings.default_page_limit,
            max_limit=settings.max_page_limit,
        ),
    )

    auth_gate = AuthGate(
        provider=session_provider or DatabaseSessionProvider(session_factory),
        protected_prefix=settings.api_prefix,
        public_prefixes=settings.public_path_prefixes_list,
        enabled=settings.auth_enabled,
    )

    rate_limit_gate = RateLimitGate(
        store=rate_limit_store or InMemoryRateLimitStore(
            points=settings.rate_limiter_points,
            duration=settings.rate_limiter_duration,
        ),
        points=settings.rate_limiter_points,
        enabled=settings.is_production,
    )

    logger.info("Registered routes: %s", ", ".join(registry.list_names()))

    return AppServices(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        registry=registry,
        dispatcher=dispatcher,
        formatter=ResponseFormatter(),
        auth_gate=auth_gate,
        rate_limit_gate=rate_limit_gate,
    )


# ── FastAPI dependencies ──────────────────────────────────────────────────


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def resolve_route(
    route: str,
    services: AppServices = Depends(get_services),
) -> RouteEntry:
    """Raises RouteNotFoundError for an unregistered route segment."""
    entry = services.registry.find(route)
    if entry is None:
        # lookup() raises the 404 with the route in its context
        services.registry.lookup(route)
    return entry


async def require_session(
    request: Request,
    entry: RouteEntry = Depends(resolve_route),
    services: AppServices = Depends(get_services),
) -> RouteEntry:
    """
    Attach the caller's session to `request.state` or raise UnauthenticatedError.

    Returns the resolved route entry so handlers depend on this alone.
    """
    request.state.user = None
    request.state.session = None
    gate = services.auth_gate
    if not gate.is_protected(request.url.path):
        return entry

    auth = await gate.authenticate(request.headers)
    if auth is None:
        raise UnauthenticatedError(context={"path": request.url.path})

    request.state.user = auth.user
    request.state.session = auth.session
    return entry
