"""
RestGate Backend — Route Registry
=================================

What:  Static mapping between public URL segments and internal resource keys.
Why:   The dispatcher never looks a model up by an arbitrary string: a route
       segment resolves to a `ResourceKey`, and every `ResourceKey` is bound to
       exactly one store and one set of schemas at startup.
How:   Built once from `DEFAULT_ROUTES`; read-only afterwards, so it needs no
       synchronization across concurrent requests.

Adding a resource:
    1. Add an ORM model (restgate/models)
    2. Add create/update schemas (restgate/schemas/resources.py)
    3. Add a member to `ResourceKey` and a `RouteEntry` below
    Startup verification fails if any of the three is missing.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from restgate.exceptions import ConfigurationError, RouteNotFoundError


class ResourceKey(str, Enum):
    POST = "Post"
    COMMENT = "Comment"


@dataclass(frozen=True)
class RouteEntry:
    public_name: str
    model_key: ResourceKey


DEFAULT_ROUTES: Tuple[RouteEntry, ...] = (
    RouteEntry(public_name="post", model_key=ResourceKey.POST),
    RouteEntry(public_name="comment", model_key=ResourceKey.COMMENT),
)


class RouteRegistry:
    """
    Lookup table from public route name to `RouteEntry`.

    Raises ConfigurationError on construction if two entries share a public name.
    """

    def __init__(self, entries: Iterable[RouteEntry] = DEFAULT_ROUTES):
        self._entries: Dict[str, RouteEntry] = {}
        for entry in entries:
            if entry.public_name in self._entries:
                raise ConfigurationError(
                    f"Duplicate route name '{entry.public_name}'",
                    context={"route": entry.public_name},
                )
            self._entries[entry.public_name] = entry

    def find(self, public_name: str) -> Optional[RouteEntry]:
        return self._entries.get(public_name)

    def lookup(self, public_name: str) -> ResourceKey:
        """
        Resolve a route segment to its resource key.

        Raises:
            RouteNotFoundError: the segment is not registered (→ 404)
        """
        entry = self._entries.get(public_name)
        if entry is None:
            raise RouteNotFoundError(route=public_name)
        return entry.model_key

    def list_names(self) -> List[str]:
        return list(self._entries)

    def model_keys(self) -> List[ResourceKey]:
        return [entry.model_key for entry in self._entries.values()]

    def __contains__(self, public_name: object) -> bool:
        return public_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
