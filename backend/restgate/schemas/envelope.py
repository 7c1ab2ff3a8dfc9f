"""
RestGate Backend — Response Envelopes
=====================================

What:  Pydantic models for the uniform response wrapper.
Why:   Every response, success or failure, has one of three shapes, so clients
       can parse them without per-endpoint logic:

       collection  { data, totalItems, currentPage, itemsPerPage,
                     totalPages, hasNextPage, hasPreviousPage }
       single      the resource mapping itself
       status      { status, message?, error?, timestamp?, retryAfter? }

How:   Fields are snake_case in Python and camelCase on the wire
       (alias_generator=to_camel). `None` fields are dropped when rendered.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp for status envelopes."""
    return datetime.now(timezone.utc).isoformat()


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CollectionEnvelope(_Envelope):
    """One page of a collection plus the pagination state derived from it."""

    data: List[Dict[str, Any]] = Field(default_factory=list)
    total_items: int
    current_page: int
    items_per_page: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class StatusEnvelope(_Envelope):
    """Outcome-only response: errors, deletions, health and rate limiting."""

    status: str
    message: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None
    retry_after: Optional[float] = None
    ip: Optional[str] = None


Envelope = Union[CollectionEnvelope, StatusEnvelope, Mapping[str, Any]]


def not_found_envelope() -> StatusEnvelope:
    """The uniform 404 body for unknown routes and unmatched paths."""
    return StatusEnvelope(status="not found", timestamp=utc_timestamp())
