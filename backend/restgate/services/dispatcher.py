"""
RestGate Backend — Resource Dispatcher (CRUD Orchestrator)
==========================================================

What:  Turns one resolved request into one store operation and one envelope.
Why:   Every resource shares the same list/create/read/update/delete semantics;
       the dispatcher is the single place they are implemented.
How:   Resolve route → ResourceKey, pick the store bound to that key, branch on
       endpoint shape (collection vs resource) and HTTP verb.

Request flow:
    ┌──────────────┐    ┌───────────────┐    ┌──────────────┐    ┌────────────┐
    │ Route lookup │───▶│ Query parser /│───▶│ Model store  │───▶│ Envelope + │
    │ (registry)   │    │ Payload valid.│    │ (count/find/ │    │ status     │
    └──────────────┘    └───────────────┘    │  mutate)     │    └────────────┘
                                             └──────────────┘

Outcomes:
    Collection GET     200 collection envelope (count + page read run concurrently)
    Collection POST    201 created resource | 400 validation | 500 store failure
    Resource GET       200 resource
    Resource PUT/PATCH 200 updated resource | 400 validation | 500 store failure
    Resource DELETE    200 {"status": "success"} | 500 store failure
    Missing id         404 for every resource verb, before any mutation
    Malformed query    400
    Unsupported verb   404

Design Decision:
    Resource verbs first check existence with `find_unique`. That costs one
    extra round-trip but gives every verb the same 404 contract regardless of
    how the underlying store reports a missing row, and a mutation is never
    issued against an id that does not exist.

    Read failures are handled like write failures: a store exception during
    count/find_many/find_unique becomes a 500 status envelope carrying the
    underlying message instead of escaping to the global error boundary.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from restgate.exceptions import ConfigurationError, MalformedQueryError
from restgate.schemas.envelope import (
    CollectionEnvelope,
    Envelope,
    StatusEnvelope,
    not_found_envelope,
)
from restgate.schemas.resources import OperationKind
from restgate.services.model_store import ModelStore
from restgate.services.payload_validator import PayloadValidator
from restgate.services.query_params import QueryParser
from restgate.services.route_registry import ResourceKey, RouteRegistry

logger = logging.getLogger(__name__)

COLLECTION_METHODS = ("GET", "POST")
RESOURCE_METHODS = ("GET", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True)
class DispatchRequest:
    method: str
    route: str
    resource_id: Optional[str] = None
    query: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class DispatchResult:
    payload: Envelope
    status_code: int = 200
    # Successful reads get Cache-Control/ETag headers
    cacheable: bool = False


def _status(
    status_code: int,
    status: str,
    message: Optional[str] = None,
    error: Optional[str] = None,
) -> DispatchResult:
    return DispatchResult(
        payload=StatusEnvelope(status=status, message=message, error=error),
        status_code=status_code,
    )


def _error_detail(exc: BaseException) -> str:
    return str(exc) or "Unknown error"


def _not_found() -> DispatchResult:
    return _status(404, "error", "Resource not found")


def _unsupported_method() -> DispatchResult:
    return DispatchResult(payload=not_found_envelope(), status_code=404)


class ResourceDispatcher:
    """
    Args:
        registry:   route name → ResourceKey
        stores:     ResourceKey → ModelStore, one per registered route
        validator:  payload validator over the schema table
        parser:     query parameter parser

    Raises ConfigurationError on construction if a registered route has no
    store or is missing a schema.
    """

    def __init__(
        self,
        registry: RouteRegistry,
        stores: Mapping[ResourceKey, ModelStore],
        validator: PayloadValidator,
        parser: QueryParser,
    ):
        self.registry = registry
        self.stores: Dict[ResourceKey, ModelStore] = dict(stores)
        self.validator = validator
        self.parser = parser
        self._verify()

    def _verify(self) -> None:
        keys = self.registry.model_keys()
        missing = [key.value for key in keys if key not in self.stores]
        if missing:
            raise ConfigurationError(
                "Routes without a model store: " + ", ".join(missing),
                context={"missing": missing},
            )
        self.validator.verify(keys)

    async def dispatch(self, request: DispatchRequest) -> DispatchResult:
        """
        Handle one request against a registered route.

        Raises:
            RouteNotFoundError: the route segment is not registered
        """
        key = self.registry.lookup(request.route)
        store = self.stores[key]
        method = request.method.upper()

        if request.resource_id is None:
            if method == "GET":
                return await self._list(key, store, request)
            if method == "POST":
                return await self._create(key, store, request)
            return _unsupported_method()

        if method not in RESOURCE_METHODS:
            return _unsupported_method()
        return await self._on_resource(key, store, method, request)

    # ── Collection ────────────────────────────────────────────────────────

    async def _list(self, key: ResourceKey, store: ModelStore, request: DispatchRequest) -> DispatchResult:
        try:
            spec = self.parser.parse(request.query)
            # Independent reads; both must finish before the envelope is built
            total, data = await asyncio.gather(
                store.count(where=spec.filter),
                store.find_many(
                    skip=spec.skip,
                    take=spec.limit,
                    order_by=spec.order_by,
                    where=spec.filter,
                ),
            )
        except MalformedQueryError as e:
            return _status(400, "error", e.message)
        except Exception as e:
            logger.error("Listing %s failed: %s", key.value, e, exc_info=True)
            return _status(500, "error", "Failed to fetch resources", _error_detail(e))

        total_pages = math.ceil(total / spec.limit)
        envelope = CollectionEnvelope(
            data=list(data),
            total_items=total,
            current_page=spec.page,
            items_per_page=spec.limit,
            total_pages=total_pages,
            has_next_page=spec.page < total_pages,
            has_previous_page=spec.page > 1,
        )
        return DispatchResult(payload=envelope, status_code=200, cacheable=True)

    async def _create(self, key: ResourceKey, store: ModelStore, request: DispatchRequest) -> DispatchResult:
        outcome = self.validator.validate(key, OperationKind.CREATE, request.body)
        if not outcome.ok:
            return _status(400, "error", outcome.message)

        try:
            created = await store.create(outcome.value)
        except Exception as e:
            logger.error("Creating %s failed: %s", key.value, e, exc_info=True)
            return _status(500, "error", "Failed to create resource", _error_detail(e))
        return DispatchResult(payload=created, status_code=201)

    # ── Single resource ───────────────────────────────────────────────────

    async def _on_resource(
        self, key: ResourceKey, store: ModelStore, method: str, request: DispatchRequest
    ) -> DispatchResult:
        resource_id = request.resource_id
        try:
            resource = await store.find_unique(resource_id)
        except Exception as e:
            logger.error("Fetching %s %s failed: %s", key.value, resource_id, e, exc_info=True)
            return _status(500, "error", "Failed to fetch resource", _error_detail(e))
        if resource is None:
            return _not_found()

        if method == "GET":
            return DispatchResult(payload=resource, status_code=200, cacheable=True)
        if method == "DELETE":
            return await self._delete(key, store, resource_id)

        kind = OperationKind.UPDATE_PARTIAL if method == "PATCH" else OperationKind.UPDATE_FULL
        return await self._update(key, store, resource_id, kind, request.body)

    async def _update(
        self, key: ResourceKey, store: ModelStore, resource_id: str, kind: OperationKind, body: bytes
    ) -> DispatchResult:
        outcome = self.validator.validate(key, kind, body)
        if not outcome.ok:
            return _status(400, "error", outcome.message)

        try:
            updated = await store.update(resource_id, outcome.value)
        except Exception as e:
            logger.error("Updating %s %s failed: %s", key.value, resource_id, e, exc_info=True)
            return _status(500, "error", "Failed to update resource", _error_detail(e))
        if updated is None:
            # Deleted between the lookup and the update
            return _not_found()
        return DispatchResult(payload=updated, status_code=200)

    async def _delete(self, key: ResourceKey, store: ModelStore, resource_id: str) -> DispatchResult:
        try:
            await store.delete(resource_id)
        except Exception as e:
            logger.error("Deleting %s %s failed: %s", key.value, resource_id, e, exc_info=True)
            return _status(500, "error", "Failed to delete resource", _error_detail(e))
        return _status(200, "success", "Resource deleted successfully")

