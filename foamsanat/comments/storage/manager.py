"""Storage lifecycle: lazy single-flight initialization with cached failures.

The first caller starts initialization; concurrent callers await the same
task. A failed attempt is remembered and only retried once the retry-after
interval has passed. A read-only deployment (SQLite without a writable
filesystem) never attempts to open a database.
"""

import asyncio
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from foamsanat.comments.exceptions import StorageInitializationError
from foamsanat.comments.models import utcnow
from foamsanat.comments.status import (
    READ_ONLY_ENVIRONMENT,
    STORAGE_UNAVAILABLE,
    StorageMetrics,
    StorageStatus,
)
from foamsanat.comments.storage.base import CommentStorage
from foamsanat.comments.storage.postgres import PostgresCommentStorage
from foamsanat.comments.storage.sqlite import SqliteCommentStorage
from foamsanat.config.settings import Settings
from foamsanat.core.logging import get_logger


logger = get_logger(__name__)


def build_storage(settings: Settings) -> CommentStorage:
    """Create the configured storage engine (not yet initialized).

    Raises:
        StorageInitializationError: Postgres selected without a database URL.
    """
    if settings.comments_storage_backend == "postgres":
        if not settings.comments_database_url:
            raise StorageInitializationError(
                "COMMENTS_DATABASE_URL is required for the postgres backend",
                "COMMENTS_DB_URL_MISSING",
            )
        return PostgresCommentStorage(
            settings.comments_database_url,
            pool_size=settings.comments_db_pool_size,
            connect_timeout=settings.comments_db_connect_timeout,
        )
    return SqliteCommentStorage(settings.comments_sqlite_path)


class StorageManager:
    """Owns the storage instance and its availability status."""

    def __init__(
        self,
        factory: Callable[[], CommentStorage],
        backend: str,
        retry_after_seconds: int = 300,
        read_only_environment: bool = False,
        read_only_retry_after_seconds: int = 3600,
    ) -> None:
        self._factory = factory
        self.backend = backend
        self.retry_after_seconds = retry_after_seconds
        self.read_only_environment = read_only_environment
        self.read_only_retry_after_seconds = read_only_retry_after_seconds

        self.metrics = StorageMetrics()
        self._storage: CommentStorage | None = None
        self._error_code: str | None = None
        self._init_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageManager":
        return cls(
            factory=lambda: build_storage(settings),
            backend=settings.comments_storage_backend,
            retry_after_seconds=settings.comments_storage_retry_after_seconds,
            read_only_environment=settings.comments_read_only_environment,
            read_only_retry_after_seconds=settings.comments_read_only_retry_after_seconds,
        )

    # ==========================================================================
    # Status
    # ==========================================================================

    def status(self) -> StorageStatus:
        """Current status without triggering an attempt."""
        if self.read_only_environment:
            return StorageStatus(
                ready=False,
                backend=self.backend,
                error_code=READ_ONLY_ENVIRONMENT,
                retry_after_seconds=self.read_only_retry_after_seconds,
                metrics=self.metrics,
            )

        if self._storage is not None and self._storage.is_ready():
            return StorageStatus(ready=True, backend=self.backend, metrics=self.metrics)

        return StorageStatus(
            ready=False,
            backend=self.backend,
            error_code=self._error_code or STORAGE_UNAVAILABLE,
            retry_after_seconds=self.retry_after_seconds,
            metrics=self.metrics,
        )

    def _retry_due(self) -> bool:
        last = self.metrics.last_attempt_at
        if last is None or self._error_code is None:
            return True
        return utcnow() - last >= timedelta(seconds=self.retry_after_seconds)

    async def ensure_ready(self) -> StorageStatus:
        """Initialize storage if needed and report availability."""
        if self.read_only_environment:
            return self.status()

        if self._storage is not None and self._storage.is_ready():
            return self.status()

        if self._init_task is None or self._init_task.done():
            if not self._retry_due():
                return self.status()
            self._init_task = asyncio.create_task(self._initialize())

        # Shield so a cancelled request does not abort the shared attempt
        await asyncio.shield(self._init_task)
        return self.status()

    async def get_storage(self) -> CommentStorage:
        """Ready storage instance.

        Raises:
            StorageUnavailableError: Storage is offline.
        """
        status = await self.ensure_ready()
        if not status.ready or self._storage is None:
            logger.warning(
                "comments_storage_unavailable",
                code=status.error_code,
                retry_after_seconds=status.retry_after_seconds,
                attempts=self.metrics.attempts,
                failures=self.metrics.failures,
            )
            raise status.to_error()
        return self._storage

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def _initialize(self) -> None:
        self.metrics.attempts += 1
        self.metrics.last_attempt_at = utcnow()

        storage: CommentStorage | None = None
        try:
            storage = self._factory()
            await storage.initialize()
        except (StorageInitializationError, SQLAlchemyError, OSError, ImportError) as e:
            code = getattr(e, "code", None)
            self._error_code = code if isinstance(code, str) else STORAGE_UNAVAILABLE
            self.metrics.failures += 1
            self.metrics.last_failure_at = utcnow()
            logger.error(
                "comments_storage_init_failed",
                backend=self.backend,
                code=self._error_code,
                error_type=type(e).__name__,
                attempts=self.metrics.attempts,
            )
            if storage is not None:
                await self._dispose(storage)
            return

        self._storage = storage
        self._error_code = None
        self.metrics.successes += 1
        self.metrics.last_success_at = utcnow()
        logger.info(
            "comments_storage_initialized",
            backend=self.backend,
            attempts=self.metrics.attempts,
        )

    async def _dispose(self, storage: CommentStorage) -> None:
        try:
            await storage.close()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("comments_storage_close_failed", error_type=type(e).__name__)

    async def close(self) -> None:
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        if self._storage is not None:
            await self._dispose(self._storage)
        self._storage = None

    def reset(self) -> None:
        """Forget the cached failure so the next call retries immediately."""
        self._error_code = None
        self.metrics.last_attempt_at = None
