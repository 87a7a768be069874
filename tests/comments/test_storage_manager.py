"""Tests for storage lifecycle: single-flight init, cached failures, read-only mode."""

import asyncio
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from foamsanat.comments.exceptions import (
    StorageInitializationError,
    StorageUnavailableError,
)
from foamsanat.comments.models import utcnow
from foamsanat.comments.status import READ_ONLY_ENVIRONMENT
from foamsanat.comments.storage.base import CommentStorage
from foamsanat.comments.storage.manager import StorageManager, build_storage
from foamsanat.comments.storage.sqlite import SqliteCommentStorage
from foamsanat.config.settings import Settings


def _storage(before_ready: AsyncMock | None = None) -> Mock:
    """Storage double that becomes ready once initialize completes."""
    storage = Mock(spec=CommentStorage)
    state = {"ready": False}

    async def initialize() -> None:
        if before_ready is not None:
            await before_ready()
        state["ready"] = True

    storage.initialize = AsyncMock(side_effect=initialize)
    storage.close = AsyncMock()
    storage.is_ready = Mock(side_effect=lambda: state["ready"])
    return storage


class TestStorageManager:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_attempt(self) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_init() -> None:
            started.set()
            await release.wait()

        storage = _storage(AsyncMock(side_effect=slow_init))
        factory = Mock(return_value=storage)
        manager = StorageManager(factory, backend="sqlite")

        waiters = [asyncio.create_task(manager.ensure_ready()) for _ in range(5)]
        await started.wait()
        release.set()
        statuses = await asyncio.gather(*waiters)

        assert all(s.ready for s in statuses)
        assert factory.call_count == 1
        assert manager.metrics.attempts == 1
        assert manager.metrics.successes == 1

    @pytest.mark.asyncio
    async def test_failure_is_cached_until_retry_due(self) -> None:
        factory = Mock(
            side_effect=StorageInitializationError("cannot open", "SQLITE_CANTOPEN")
        )
        manager = StorageManager(factory, backend="sqlite", retry_after_seconds=300)

        first = await manager.ensure_ready()
        second = await manager.ensure_ready()

        assert not first.ready
        assert first.error_code == "SQLITE_CANTOPEN"
        assert first.retry_after_seconds == 300
        assert second.error_code == "SQLITE_CANTOPEN"
        assert factory.call_count == 1
        assert manager.metrics.failures == 1

    @pytest.mark.asyncio
    async def test_retries_after_interval(self) -> None:
        storage = _storage()
        factory = Mock(
            side_effect=[
                StorageInitializationError("cannot open", "SQLITE_BUSY"),
                storage,
            ]
        )
        manager = StorageManager(factory, backend="sqlite", retry_after_seconds=300)

        assert not (await manager.ensure_ready()).ready

        manager.metrics.last_attempt_at = utcnow() - timedelta(seconds=301)
        status = await manager.ensure_ready()

        assert status.ready
        assert status.error_code is None
        assert manager.metrics.attempts == 2

    @pytest.mark.asyncio
    async def test_reset_allows_immediate_retry(self) -> None:
        factory = Mock(
            side_effect=StorageInitializationError("cannot open", "SQLITE_CANTOPEN")
        )
        manager = StorageManager(factory, backend="sqlite")

        await manager.ensure_ready()
        manager.reset()
        await manager.ensure_ready()

        assert factory.call_count == 2

    @pytest.mark.asyncio
    async def test_get_storage_raises_typed_error(self) -> None:
        factory = Mock(
            side_effect=StorageInitializationError("cannot open", "SQLITE_CANTOPEN")
        )
        manager = StorageManager(factory, backend="sqlite", retry_after_seconds=120)

        with pytest.raises(StorageUnavailableError) as exc_info:
            await manager.get_storage()

        assert exc_info.value.status_code == 503
        assert exc_info.value.code == "SQLITE_CANTOPEN"
        assert exc_info.value.retry_after == 120

    @pytest.mark.asyncio
    async def test_read_only_environment_never_attempts(self) -> None:
        factory = Mock()
        manager = StorageManager(
            factory,
            backend="sqlite",
            read_only_environment=True,
            read_only_retry_after_seconds=3600,
        )

        status = await manager.ensure_ready()

        assert not status.ready
        assert status.error_code == READ_ONLY_ENVIRONMENT
        assert status.retry_after_seconds == 3600
        assert status.state == "offline"
        assert "persistent storage" in status.message
        factory.assert_not_called()
        assert manager.metrics.attempts == 0

    @pytest.mark.asyncio
    async def test_real_sqlite_round_trip(self, tmp_path: Path) -> None:
        manager = StorageManager(
            lambda: SqliteCommentStorage(tmp_path / "comments.db"), backend="sqlite"
        )

        storage = await manager.get_storage()
        await manager.close()

        assert isinstance(storage, SqliteCommentStorage)
        assert not manager.status().ready


class TestBuildStorage:
    def test_postgres_without_url(self) -> None:
        settings = Settings(
            _env_file=None,
            comments_storage_backend="postgres",
            comments_database_url=None,
        )

        with pytest.raises(StorageInitializationError) as exc_info:
            build_storage(settings)

        assert exc_info.value.code == "COMMENTS_DB_URL_MISSING"

    def test_sqlite_default(self, tmp_path: Path) -> None:
        settings = Settings(
            _env_file=None, comments_sqlite_path=str(tmp_path / "c.db")
        )

        assert isinstance(build_storage(settings), SqliteCommentStorage)

    def test_read_only_detection(self) -> None:
        settings = Settings(
            _env_file=None,
            comments_storage_backend="sqlite",
            comments_database_url=None,
            comments_read_only_filesystem=True,
        )

        assert settings.comments_read_only_environment
