"""Submission rate limiting.

A fixed window starts at a client's first submission and counts every
attempt until it expires. Counters live in a primary store (Redis, shared
between instances) with an in-process store as fallback. The first primary
failure switches the limiter to the fallback for the rest of the process
lifetime.
"""

import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from redis.exceptions import RedisError

from foamsanat.core.logging import get_logger
from foamsanat.core.redis import rate_limit_key


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitCounter:
    """Counter state after an increment."""

    count: int
    expires_at_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    limited: bool
    count: int
    retry_after_seconds: int | None = None


class RateLimitStore(Protocol):
    """Atomic increment of a windowed counter."""

    name: str

    async def increment(self, key: str, window_ms: int) -> RateLimitCounter: ...


class InMemoryRateLimitStore:
    """Process-local counters. Increments are atomic under the event loop."""

    name = "memory"

    # Expired entries are swept once the table grows past this size
    SWEEP_THRESHOLD = 10_000

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitCounter] = {}

    async def increment(self, key: str, window_ms: int) -> RateLimitCounter:
        now = _now_ms()
        entry = self._entries.get(key)

        if entry is None or entry.expires_at_ms <= now:
            if len(self._entries) >= self.SWEEP_THRESHOLD:
                self._sweep(now)
            entry = RateLimitCounter(count=1, expires_at_ms=now + window_ms)
        else:
            entry = RateLimitCounter(
                count=entry.count + 1, expires_at_ms=entry.expires_at_ms
            )

        self._entries[key] = entry
        return entry

    def _sweep(self, now: int) -> None:
        expired = [k for k, v in self._entries.items() if v.expires_at_ms <= now]
        for key in expired:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()


class RedisRateLimitStore:
    """Shared counters in Redis, updated in a single MULTI/EXEC."""

    name = "redis"

    def __init__(self, redis: "Redis") -> None:
        self.redis = redis

    async def increment(self, key: str, window_ms: int) -> RateLimitCounter:
        async with self.redis.pipeline(transaction=True) as pipe:
            # SET NX starts the window; INCR keeps the existing TTL
            pipe.set(key, 0, px=window_ms, nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, count, ttl_ms = await pipe.execute()

        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = window_ms
        return RateLimitCounter(count=int(count), expires_at_ms=_now_ms() + ttl_ms)


class RateLimiter:
    """Per-client submission limiter with a sticky in-memory fallback."""

    def __init__(
        self,
        window_seconds: int = 15 * 60,
        max_submissions: int = 5,
        store: RateLimitStore | None = None,
        fallback: InMemoryRateLimitStore | None = None,
    ) -> None:
        self.window_ms = window_seconds * 1000
        self.max_submissions = max_submissions
        self.fallback = fallback or InMemoryRateLimitStore()
        self.primary: RateLimitStore = store or self.fallback
        self._use_fallback = self.primary is self.fallback

    @property
    def using_fallback(self) -> bool:
        return self._use_fallback

    @property
    def active_store(self) -> RateLimitStore:
        return self.fallback if self._use_fallback else self.primary

    async def hit(self, client_id: str) -> RateLimitResult:
        """Count one submission attempt for a client.

        Args:
            client_id: Client identifier (address or "unknown").

        Returns:
            RateLimitResult; ``limited`` once the count exceeds the maximum.
        """
        key = rate_limit_key(client_id)
        counter = await self._increment(key)

        if counter.count <= self.max_submissions:
            return RateLimitResult(limited=False, count=counter.count)

        remaining_ms = max(counter.expires_at_ms - _now_ms(), 0)
        retry_after = max(1, math.ceil(remaining_ms / 1000))
        return RateLimitResult(
            limited=True, count=counter.count, retry_after_seconds=retry_after
        )

    async def _increment(self, key: str) -> RateLimitCounter:
        if not self._use_fallback:
            try:
                return await self.primary.increment(key, self.window_ms)
            except (RedisError, OSError) as e:
                self._use_fallback = True
                logger.warning(
                    "rate_limit_store_fallback",
                    store=self.primary.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        return await self.fallback.increment(key, self.window_ms)
