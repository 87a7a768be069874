"""Postgres comment storage (asyncpg driver).

Timestamps are TIMESTAMPTZ and audit metadata is JSONB. The parent comment
row is share-locked while a reply is inserted.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from foamsanat.comments.storage.sql import SqlCommentStorage


UNIQUE_VIOLATION = "23505"


def normalize_postgres_url(url: str) -> str:
    """Point plain ``postgres://`` URLs at the asyncpg driver."""
    for prefix in ("postgresql+asyncpg://", "postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def create_postgres_engine(
    url: str, pool_size: int = 5, connect_timeout: float = 5.0
) -> AsyncEngine:
    return create_async_engine(
        normalize_postgres_url(url),
        pool_size=pool_size,
        max_overflow=pool_size,
        pool_pre_ping=True,
        connect_args={"timeout": connect_timeout},
    )


class PostgresCommentStorage(SqlCommentStorage):
    """Comments in a shared Postgres database."""

    backend = "postgres"
    generic_error_code = "POSTGRES_ERROR"
    parent_lock_clause = "FOR SHARE"

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        connect_timeout: float = 5.0,
        engine: AsyncEngine | None = None,
    ) -> None:
        super().__init__(
            engine or create_postgres_engine(url, pool_size, connect_timeout)
        )

    def is_unique_violation(self, exc: IntegrityError) -> bool:
        orig = exc.orig
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        return code == UNIQUE_VIOLATION

    def connection_metrics(self) -> dict[str, int]:
        pool = self.engine.pool
        try:
            return {
                "active": pool.checkedout(),
                "idle": pool.checkedin(),
                "overflow": max(pool.overflow(), 0),
                "size": pool.size(),
            }
        except AttributeError:
            return {}
