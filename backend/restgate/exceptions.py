"""
RestGate Backend — Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the request-level error scenarios.
Why:   Custom exceptions let gates and services signal an outcome once and
       have a global handler turn it into the right status code and envelope.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       render a content-negotiated status envelope.

Exception Hierarchy:
    RestGateError (base)            → 500 Internal Server Error
    ├── RouteNotFoundError          → 404 Not Found
    ├── UnauthenticatedError        → 401 Unauthorized
    ├── MalformedQueryError         → 400 Bad Request (handled by the dispatcher)
    └── ConfigurationError          → startup failure, never per request

Payload validation failures and store failures are NOT exceptions here: the
dispatcher resolves them locally into 400/500 envelopes.
"""

from typing import Any, Dict, Optional


class RestGateError(Exception):
    """
    Base exception for all RestGate application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class RouteNotFoundError(RestGateError):
    """
    Raised when the route segment is not registered.

    HTTP:    404 Not Found
    Raised before authentication runs, so the response for a nonexistent
    collection never reveals whether credentials were required.
    """

    def __init__(
        self,
        route: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if route is not None:
            ctx["route"] = route
        super().__init__(message="not found", context=ctx)
        self.route = route


class UnauthenticatedError(RestGateError):
    """No valid session accompanied a request to a protected path (401)."""

    def __init__(
        self,
        message: str = "You are not authorized to access this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MalformedQueryError(RestGateError):
    """
    Raised when a query string parameter cannot be interpreted.

    When:    `filter` is not a JSON object, or a filter/sort names a field or
             operator the target model does not have.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Malformed query parameter",
        parameter: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if parameter:
            ctx["parameter"] = parameter
        super().__init__(message=message, context=ctx)
        self.parameter = parameter


class ConfigurationError(RestGateError):
    """
    Raised at application assembly when declared resources are inconsistent.

    Examples: a route whose model has no store, a model missing its create or
    update schema, two routes sharing a public name.
    """
