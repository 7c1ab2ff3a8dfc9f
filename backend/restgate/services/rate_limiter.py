"""
RestGate Backend — Rate Limit Store & Gate
==========================================

What:  Per-client request budget: `points` requests per `duration` seconds.
Why:   Protects the API and its database from abusive clients.
How:   The gate asks a `RateLimitStore` to consume one point for the client
       key and turns the answer into Admitted / Rejected. The store is the only
       cross-request mutable state; each `consume()` is a single atomic step
       (no await between read and write), so the gate never does its own
       read-modify-write.

Algorithm (InMemoryRateLimitStore): Sliding Window Log
    1. Each key keeps the timestamps of its admitted requests
    2. On consume, drop timestamps older than the window
    3. If the remaining count >= points, reject; ms_before_next is the time
       until the oldest timestamp leaves the window
    4. Otherwise record now and admit

    In-memory state is per process. Multi-worker deployments plug a shared
    store in behind the same `consume()` contract.

Environment gating:
    The gate is constructed with enabled = (environment == "production").
    A disabled gate admits everything without touching the store.
"""

import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumeResult:
    allowed: bool
    remaining_points: int
    ms_before_next: int


class RateLimitStore(Protocol):
    async def consume(self, key: str) -> ConsumeResult: ...


class InMemoryRateLimitStore:
    def __init__(
        self,
        points: int,
        duration: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.points = points
        self.duration = duration
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._consumed = 0

    async def consume(self, key: str) -> ConsumeResult:
        now = self._clock()
        window_start = now - self.duration

        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps

        if len(timestamps) >= self.points:
            ms_before_next = int(math.ceil((timestamps[0] + self.duration - now) * 1000))
            return ConsumeResult(allowed=False, remaining_points=0, ms_before_next=ms_before_next)

        timestamps.append(now)
        ms_before_next = int(math.ceil((timestamps[0] + self.duration - now) * 1000))

        self._consumed += 1
        if self._consumed % 1000 == 0:
            self._cleanup_inactive_keys(window_start)

        return ConsumeResult(
            allowed=True,
            remaining_points=self.points - len(timestamps),
            ms_before_next=ms_before_next,
        )

    def _cleanup_inactive_keys(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit keys", len(inactive))


@dataclass(frozen=True)
class Admitted:
    limit: int
    remaining: int
    reset_after_ms: int
    # True when the gate is disabled and the store was never consulted
    bypassed: bool = False

    @property
    def reset_after_seconds(self) -> int:
        return max(1, math.ceil(self.reset_after_ms / 1000))


@dataclass(frozen=True)
class Rejected:
    retry_after_ms: int

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.retry_after_ms / 1000))


class RateLimitGate:
    def __init__(self, store: RateLimitStore, points: int, enabled: bool):
        self.store = store
        self.points = points
        self.enabled = enabled

    async def admit(self, client_key: str) -> Union[Admitted, Rejected]:
        if not self.enabled:
            return Admitted(limit=self.points, remaining=self.points, reset_after_ms=0, bypassed=True)

        result = await self.store.consume(client_key)
        if not result.allowed:
            logger.warning(
                "Rate limit exceeded for %s: retry in %dms", client_key, result.ms_before_next
            )
            return Rejected(retry_after_ms=result.ms_before_next)
        return Admitted(
            limit=self.points,
            remaining=result.remaining_points,
            reset_after_ms=result.ms_before_next,
        )


def client_key_from(host: Optional[str]) -> str:
    return host or "127.0.0.1"
