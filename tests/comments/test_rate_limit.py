"""Tests for submission rate limiting."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from foamsanat.comments.rate_limit import (
    InMemoryRateLimitStore,
    RateLimitCounter,
    RateLimiter,
    RedisRateLimitStore,
)


class FailingStore:
    """Primary store whose backend is unreachable."""

    name = "redis"

    def __init__(self) -> None:
        self.calls = 0

    async def increment(self, key: str, window_ms: int) -> RateLimitCounter:
        self.calls += 1
        raise RedisConnectionError("connection refused")


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(window_seconds=900, max_submissions=5)


class TestRateLimiter:
    """Tests for RateLimiter.hit."""

    @pytest.mark.asyncio
    async def test_allows_up_to_max_submissions(self, limiter: RateLimiter) -> None:
        results = [await limiter.hit("203.0.113.7") for _ in range(5)]

        assert all(not r.limited for r in results)
        assert [r.count for r in results] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_sixth_submission_limited(self, limiter: RateLimiter) -> None:
        for _ in range(5):
            await limiter.hit("203.0.113.7")

        result = await limiter.hit("203.0.113.7")

        assert result.limited
        assert result.count == 6
        assert result.retry_after_seconds is not None
        assert 1 <= result.retry_after_seconds <= 900

    @pytest.mark.asyncio
    async def test_clients_counted_separately(self, limiter: RateLimiter) -> None:
        for _ in range(6):
            await limiter.hit("203.0.113.7")

        result = await limiter.hit("198.51.100.2")

        assert not result.limited
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_window_restarts_after_expiry(self) -> None:
        limiter = RateLimiter(window_seconds=0, max_submissions=1)

        await limiter.hit("client")
        result = await limiter.hit("client")

        # A zero-length window has already expired on the next hit
        assert not result.limited
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_fallback_is_sticky_after_primary_failure(self) -> None:
        primary = FailingStore()
        limiter = RateLimiter(max_submissions=5, store=primary)

        assert not limiter.using_fallback

        results = [await limiter.hit("client") for _ in range(6)]

        assert limiter.using_fallback
        assert limiter.active_store is limiter.fallback
        assert primary.calls == 1
        assert [r.count for r in results] == [1, 2, 3, 4, 5, 6]
        assert not any(r.limited for r in results[:5])
        assert results[5].limited
        assert results[5].retry_after_seconds is not None
        assert results[5].retry_after_seconds >= 1

    def test_memory_only_limiter_reports_memory_store(self) -> None:
        limiter = RateLimiter()
        assert limiter.active_store.name == "memory"
        assert limiter.using_fallback


class TestInMemoryRateLimitStore:
    @pytest.mark.asyncio
    async def test_counts_within_window(self) -> None:
        store = InMemoryRateLimitStore()

        first = await store.increment("k", 60_000)
        second = await store.increment("k", 60_000)

        assert (first.count, second.count) == (1, 2)
        assert second.expires_at_ms == first.expires_at_ms

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        store = InMemoryRateLimitStore()
        await store.increment("k", 60_000)

        store.clear()

        assert (await store.increment("k", 60_000)).count == 1


class TestRedisRateLimitStore:
    @pytest.mark.asyncio
    async def test_increment_uses_transactional_pipeline(self) -> None:
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[True, 3, 120_000])
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=None)
        redis = MagicMock()
        redis.pipeline = MagicMock(return_value=pipe)

        counter = await RedisRateLimitStore(redis).increment(
            "comments:rate:client", 900_000
        )

        redis.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with(
            "comments:rate:client", 0, px=900_000, nx=True
        )
        pipe.incr.assert_called_once_with("comments:rate:client")
        pipe.pttl.assert_called_once_with("comments:rate:client")
        assert counter.count == 3

    @pytest.mark.asyncio
    async def test_missing_ttl_falls_back_to_window(self) -> None:
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[None, 1, -1])
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=None)
        redis = MagicMock()
        redis.pipeline = MagicMock(return_value=pipe)

        limiter = RateLimiter(
            window_seconds=900, max_submissions=0, store=RedisRateLimitStore(redis)
        )
        result = await limiter.hit("client")

        assert result.limited
        assert 899 <= (result.retry_after_seconds or 0) <= 900
