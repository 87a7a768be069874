"""SQLite comment storage (aiosqlite driver).

Connections enable foreign keys (reply cascade) and WAL journaling.
Timestamps are stored as fixed-width UTC ISO text.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from foamsanat.comments.exceptions import StorageInitializationError
from foamsanat.comments.storage.sql import SqlCommentStorage, format_timestamp


def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sqlite_engine(path: str | Path) -> AsyncEngine:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{Path(path)}",
        connect_args={"timeout": 15},
    )
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
    return engine


class SqliteCommentStorage(SqlCommentStorage):
    """Comments in a local SQLite file."""

    backend = "sqlite"
    generic_error_code = "SQLITE_ERROR"

    def __init__(self, path: str | Path, engine: AsyncEngine | None = None) -> None:
        self.path = Path(path)
        super().__init__(engine or create_sqlite_engine(self.path))

    async def initialize(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._last_error_code = "SQLITE_CANTOPEN"
            raise StorageInitializationError(
                "comments data directory cannot be created", "SQLITE_CANTOPEN"
            ) from e
        await super().initialize()

    def bind_timestamp(self, value: datetime | None) -> str | None:
        return format_timestamp(value)

    def error_code_for(self, exc: BaseException) -> str:
        orig = getattr(exc, "orig", None) or exc.__cause__ or exc
        if isinstance(orig, sqlite3.Error):
            return getattr(orig, "sqlite_errorname", None) or self.generic_error_code
        return self.generic_error_code

    def is_unique_violation(self, exc: IntegrityError) -> bool:
        orig = exc.orig
        errorname = getattr(orig, "sqlite_errorname", None)
        if errorname:
            return errorname in {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}
        return "UNIQUE constraint failed" in str(orig)
