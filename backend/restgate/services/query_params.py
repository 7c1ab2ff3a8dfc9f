"""
RestGate Backend — Query Parameter Parser
=========================================

What:  Turns a collection GET's query string into a `QuerySpec`.
Why:   Every collection endpoint uses the same pagination, sort and filter
       rules, so they live in one place instead of in each handler.

Rules:
    page       integer, defaults to 1, never below 1; capped so the row offset
               fits a 64-bit signed integer (such pages are simply empty)
    limit      integer, defaults to `default_limit`; values below 1 fall back
               to the default, values above `max_limit` are clamped
    sortBy     optional field name
    sortOrder  exactly "asc" or "desc"; anything else means "asc"
    filter     URL-encoded JSON object → MalformedQueryError if not one

Non-numeric `page`/`limit` never fail the request: `?page=abc&limit=`
gives page=1, limit=10.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from restgate.exceptions import MalformedQueryError

SORT_ORDERS = ("asc", "desc")
# Largest offset a 64-bit signed database integer can hold
MAX_OFFSET = 2**63 - 1


@dataclass(frozen=True)
class QuerySpec:
    page: int = 1
    limit: int = 10
    sort_field: Optional[str] = None
    sort_order: str = "asc"
    filter: Optional[Dict[str, Any]] = field(default=None)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def order_by(self) -> Optional[Dict[str, str]]:
        if not self.sort_field:
            return None
        return {self.sort_field: self.sort_order}


def _to_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


class QueryParser:
    """
    Stateless parser configured with the page-size defaults.

    Args:
        default_limit: limit applied when the parameter is absent or invalid
        max_limit:     ceiling for client-supplied limits; 0 or None disables it
    """

    def __init__(self, default_limit: int = 10, max_limit: Optional[int] = 100):
        self.default_limit = default_limit
        self.max_limit = max_limit or None

    def parse(self, raw: Mapping[str, str]) -> QuerySpec:
        page = max(1, _to_int(raw.get("page")) or 1)

        limit = _to_int(raw.get("limit")) or self.default_limit
        if limit < 1:
            limit = self.default_limit
        limit = min(limit, MAX_OFFSET)
        if self.max_limit is not None and limit > self.max_limit:
            limit = self.max_limit
        page = min(page, MAX_OFFSET // limit + 1)

        sort_field = raw.get("sortBy") or None
        sort_order = raw.get("sortOrder")
        if sort_order not in SORT_ORDERS:
            sort_order = "asc"

        return QuerySpec(
            page=page,
            limit=limit,
            sort_field=sort_field,
            sort_order=sort_order,
            filter=self._parse_filter(raw.get("filter")),
        )

    @staticmethod
    def _parse_filter(raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if raw is None or raw == "":
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedQueryError(
                message=f"Invalid filter: {e.msg}",
                parameter="filter",
            )
        if not isinstance(parsed, dict):
            raise MalformedQueryError(
                message="Invalid filter: expected a JSON object",
                parameter="filter",
            )
        return parsed
