"""
RestGate Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes service wiring, middleware registration, route mounting,
       error rendering and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn restgate.main:app) and by the test suite.
When:  Once at server startup; the returned app handles all subsequent requests.

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                      FastAPI App                        │
    │                                                         │
    │  Middleware Chain:                                      │
    │  ┌──────┐ ┌────────────┐ ┌────────┐ ┌─────────┐ ┌──────┐│
    │  │ CORS │→│ Rate Limit │→│ Req ID │→│ Logging │→│ GZip ││
    │  └──────┘ └────────────┘ └────────┘ └─────────┘ └──────┘│
    │                                                         │
    │  Routes:                                                │
    │  ┌────────────────────┐ ┌─────────────┐ ┌──────────────┐│
    │  │ /api/v1/{route}/.. │ │ /api/health │ │ /api/auth/.. ││
    │  └────────────────────┘ └─────────────┘ └──────────────┘│
    │                                                         │
    │  Exception Handlers (all content-negotiated):           │
    │  RouteNotFound→404 │ Unauthenticated→401 │ other→500     │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Assembly (create_app):
    1. Build settings and the service graph (fails fast on inconsistent
       registry / stores / schemas)
    2. Register middleware, exception handlers and routers

    Startup:
    1. Initialize logging
    2. Validate production settings

    Shutdown:
    1. Dispose the database engine the app created
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from restgate import __version__
from restgate.config import Settings
from restgate.database import dispose_engine
from restgate.dependencies import AppServices, build_services
from restgate.exceptions import RestGateError, RouteNotFoundError, UnauthenticatedError
from restgate.middleware import (
    RateLimitMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    request_id_var,
)
from restgate.routes import auth, health, resources
from restgate.schemas.envelope import StatusEnvelope, not_found_envelope, utc_timestamp
from restgate.services.auth_gate import SessionProvider
from restgate.services.rate_limiter import RateLimitStore

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: 2024-01-15T12:00:00 [INFO] restgate.access: GET /api/v1/post 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    services: AppServices = app.state.services
    settings = services.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("RestGate %s starting up (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving; health checks and logs surface the problem
        logger.error("Configuration error: %s", e)

    logger.info("Resources served under %s", settings.api_prefix)
    logger.info("Rate limiting %s", "enabled" if services.rate_limit_gate.enabled else "disabled")
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("RestGate shutting down...")
    if services.engine is not None:
        await dispose_engine(services.engine)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or request_id_var.get("")


def _render(request: Request, payload, status_code: int, headers=None) -> Response:
    services: AppServices = request.app.state.services
    return services.formatter.to_response(
        payload,
        accept_header=request.headers.get("accept"),
        status_code=status_code,
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to status envelopes.

    Handler hierarchy:
        RouteNotFoundError      → 404 {"status": "not found", "timestamp"}
        UnauthenticatedError    → 401 {"status": "unauthorized", "message"}
        StarletteHTTPException  → its own status; 404 uses the not-found envelope
        RestGateError (base)    → 500
        Exception (fallback)    → 500, detail only outside production

    Every handler renders through the ResponseFormatter, so an XML client
    gets XML errors.
    """

    @app.exception_handler(RouteNotFoundError)
    async def handle_route_not_found(request: Request, exc: RouteNotFoundError):
        logger.info("[%s] Unknown route: %s", _request_id(request), exc.route)
        return _render(request, not_found_envelope(), 404)

    @app.exception_handler(UnauthenticatedError)
    async def handle_unauthenticated(request: Request, exc: UnauthenticatedError):
        return _render(
            request,
            StatusEnvelope(status="unauthorized", message=exc.message, timestamp=utc_timestamp()),
            401,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Unmatched verbs are treated like unmatched paths.
        if exc.status_code in (404, 405):
            return _render(request, not_found_envelope(), 404)
        return _render(
            request,
            StatusEnvelope(status="error", message=str(exc.detail), timestamp=utc_timestamp()),
            exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RestGateError)
    async def handle_restgate_error(request: Request, exc: RestGateError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            _request_id(request), type(exc).__name__, exc.message, exc.context,
        )
        return _render(
            request,
            StatusEnvelope(status="error", message=exc.message, timestamp=utc_timestamp()),
            500,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        settings = request.app.state.services.settings
        logger.error(
            "[%s] Unexpected error: %s", _request_id(request), exc, exc_info=True
        )
        return _render(
            request,
            StatusEnvelope(
                status="error",
                message="Internal Server Error",
                error=None if settings.is_production else (str(exc) or type(exc).__name__),
                timestamp=utc_timestamp(),
            ),
            500,
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    session_provider: Optional[SessionProvider] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings:          defaults to Settings() read from the environment
        session_factory:   reuse an existing sessionmaker instead of building
                           an engine from settings.database_url
        session_provider:  replaces the database-backed session lookup
        rate_limit_store:  replaces the in-memory sliding window

    Raises:
        ConfigurationError: registry, stores and schemas disagree
    """
    settings = settings or Settings()
    services = build_services(
        settings,
        session_factory=session_factory,
        session_provider=session_provider,
        rate_limit_store=rate_limit_store,
    )

    app = FastAPI(
        title="RestGate API",
        description="Generic CRUD-over-HTTP gateway with pagination, filtering and content negotiation.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in REVERSE order of addition: CORS → RateLimit → RequestID →
    # Logging → GZip → router

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        gate=services.rate_limit_gate,
        formatter=services.formatter,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "ETag",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(resources.router, prefix=settings.api_prefix)

    return app


# uvicorn expects `restgate.main:app` to be importable
app = create_app()
