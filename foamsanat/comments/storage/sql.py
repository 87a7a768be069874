"""Shared SQL implementation of comment storage.

Both engines run the same statements through a SQLAlchemy ``AsyncEngine``.
Subclasses supply the engine, the migration list, timestamp binding and the
driver-specific error classification.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from foamsanat.comments.exceptions import (
    AuditWriteError,
    CommentNotFoundError,
    DuplicateCommentError,
    StorageInitializationError,
)
from foamsanat.comments.models import (
    Comment,
    CommentReply,
    CommentStatus,
    Moderator,
    ModerationAuditLog,
    utcnow,
)
from foamsanat.comments.storage.base import CommentStorage, StorageHealth
from foamsanat.comments.storage.migrations import (
    MIGRATIONS_TABLE_SQL,
    Backend,
    Migration,
    get_migrations,
)
from foamsanat.core.logging import get_logger


logger = get_logger(__name__)


COMMENT_COLUMNS = (
    "id, product_id, rating, author, email, text, status, created_at, "
    "moderated_at, moderated_by_id, moderated_by_display_name"
)
REPLY_COLUMNS = (
    "id, comment_id, author, text, is_admin, admin_id, admin_display_name, "
    "responded_at, status, created_at"
)
AUDIT_COLUMNS = (
    "id, action, comment_id, reply_id, admin_id, admin_display_name, "
    "token_id, token_source, metadata, created_at"
)

INSERT_AUDIT_SQL = text(
    f"INSERT INTO comment_audit_logs ({AUDIT_COLUMNS}) VALUES ("
    ":id, :action, :comment_id, :reply_id, :admin_id, :admin_display_name, "
    ":token_id, :token_source, :metadata, :created_at)"
)

SELECT_APPROVED_REPLIES_SQL = text(
    f"SELECT {REPLY_COLUMNS} FROM comment_replies "
    "WHERE comment_id IN :ids AND status = 'approved' "
    "ORDER BY created_at ASC"
).bindparams(bindparam("ids", expanding=True))


class SqlCommentStorage(CommentStorage):
    """Comment storage over a SQLAlchemy async engine."""

    backend: Backend
    generic_error_code = "STORAGE_ERROR"
    # Row lock taken on the parent comment while inserting a reply
    parent_lock_clause = ""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._ready = False
        self._last_error_code: str | None = None
        self._last_error_at: datetime | None = None

    # ==========================================================================
    # Dialect hooks
    # ==========================================================================

    def bind_timestamp(self, value: datetime | None) -> Any:
        """Convert an aware datetime to the engine's parameter type."""
        return value

    def error_code_for(self, exc: BaseException) -> str:
        """Typed error code for a failure while opening or migrating."""
        return self.generic_error_code

    def is_unique_violation(self, exc: IntegrityError) -> bool:
        raise NotImplementedError

    def connection_metrics(self) -> dict[str, int]:
        return {}

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def initialize(self) -> None:
        try:
            await self._apply_migrations(get_migrations(self.backend))
        except (SQLAlchemyError, OSError) as e:
            self._ready = False
            self._last_error_code = self.error_code_for(e)
            self._last_error_at = utcnow()
            raise StorageInitializationError(
                f"{self.backend} storage initialization failed",
                self._last_error_code,
            ) from e

        self._ready = True
        self._last_error_code = None

    async def _apply_migrations(self, migrations: Sequence[Migration]) -> None:
        async with self.engine.begin() as conn:
            await conn.execute(text(MIGRATIONS_TABLE_SQL[self.backend]))
            result = await conn.execute(text("SELECT id FROM comment_migrations"))
            applied = {row.id for row in result}

        for migration in migrations:
            if migration.id in applied:
                continue
            async with self.engine.begin() as conn:
                for statement in migration.statements:
                    await conn.execute(text(statement))
                await conn.execute(
                    text(
                        "INSERT INTO comment_migrations (id, applied_at) "
                        "VALUES (:id, :applied_at)"
                    ),
                    {"id": migration.id, "applied_at": self.bind_timestamp(utcnow())},
                )
            logger.info(
                "comments_migration_applied",
                backend=self.backend,
                migration=migration.id,
            )

    def is_ready(self) -> bool:
        return self._ready

    async def close(self) -> None:
        self._ready = False
        await self.engine.dispose()

    async def get_health(self) -> StorageHealth:
        return StorageHealth(
            backend=self.backend,
            ready=self._ready,
            error_code=self._last_error_code,
            last_error_at=self._last_error_at,
            connections=self.connection_metrics(),
        )

    # ==========================================================================
    # Public reads
    # ==========================================================================

    async def get_approved_comments(self, product_id: str) -> list[Comment]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {COMMENT_COLUMNS} FROM comments "
                    "WHERE product_id = :product_id AND status = 'approved' "
                    "ORDER BY created_at DESC"
                ),
                {"product_id": product_id},
            )
            comments = [Comment.from_row(row) for row in result]
            if not comments:
                return []

            replies = await conn.execute(
                SELECT_APPROVED_REPLIES_SQL, {"ids": [c.id for c in comments]}
            )
            by_comment: dict[str, list[CommentReply]] = {}
            for row in replies:
                reply = CommentReply.from_row(row)
                by_comment.setdefault(reply.comment_id, []).append(reply)

        for comment in comments:
            comment.replies = by_comment.get(comment.id, [])
        return comments

    async def has_duplicate_comment(
        self, product_id: str, email: str, comment_text: str
    ) -> bool:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT 1 FROM comments WHERE product_id = :product_id "
                    "AND lower(email) = lower(:email) AND text = :text LIMIT 1"
                ),
                {"product_id": product_id, "email": email, "text": comment_text},
            )
            return result.first() is not None

    async def _fetch_comment(self, conn: AsyncConnection, comment_id: str) -> Comment | None:
        result = await conn.execute(
            text(f"SELECT {COMMENT_COLUMNS} FROM comments WHERE id = :id"),
            {"id": comment_id},
        )
        row = result.first()
        return Comment.from_row(row) if row else None

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def create_comment(self, comment: Comment) -> Comment:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    text(
                        f"INSERT INTO comments ({COMMENT_COLUMNS}) VALUES ("
                        ":id, :product_id, :rating, :author, :email, :text, :status, "
                        ":created_at, NULL, NULL, NULL)"
                    ),
                    {
                        "id": comment.id,
                        "product_id": comment.product_id,
                        "rating": comment.rating,
                        "author": comment.author,
                        "email": comment.email,
                        "text": comment.text,
                        "status": comment.status.value,
                        "created_at": self.bind_timestamp(comment.created_at),
                    },
                )
        except IntegrityError as e:
            if self.is_unique_violation(e):
                raise DuplicateCommentError from e
            raise
        return comment

    async def create_reply(
        self, reply: CommentReply, audit: ModerationAuditLog | None = None
    ) -> CommentReply:
        try:
            async with self.engine.begin() as conn:
                parent = await conn.execute(
                    text(
                        "SELECT id FROM comments WHERE id = :id "
                        f"{self.parent_lock_clause}"
                    ),
                    {"id": reply.comment_id},
                )
                if parent.first() is None:
                    raise CommentNotFoundError

                await conn.execute(
                    text(
                        f"INSERT INTO comment_replies ({REPLY_COLUMNS}) VALUES ("
                        ":id, :comment_id, :author, :text, :is_admin, :admin_id, "
                        ":admin_display_name, :responded_at, :status, :created_at)"
                    ),
                    {
                        "id": reply.id,
                        "comment_id": reply.comment_id,
                        "author": reply.author,
                        "text": reply.text,
                        "is_admin": reply.is_admin,
                        "admin_id": reply.admin_id,
                        "admin_display_name": reply.admin_display_name,
                        "responded_at": self.bind_timestamp(reply.responded_at),
                        "status": reply.status.value,
                        "created_at": self.bind_timestamp(reply.created_at),
                    },
                )
                await self._write_audit(conn, audit)
        except IntegrityError as e:
            # Parent removed between the check and the insert
            raise CommentNotFoundError from e
        return reply

    async def update_comment_status(
        self,
        comment_id: str,
        status: CommentStatus,
        moderator: Moderator,
        audit: ModerationAuditLog | None = None,
    ) -> Comment | None:
        async with self.engine.begin() as conn:
            result = await conn.execute(
                text(
                    "UPDATE comments SET status = :status, moderated_at = :moderated_at, "
                    "moderated_by_id = :moderated_by_id, "
                    "moderated_by_display_name = :moderated_by_display_name "
                    "WHERE id = :id"
                ),
                {
                    "id": comment_id,
                    "status": status.value,
                    "moderated_at": self.bind_timestamp(utcnow()),
                    "moderated_by_id": moderator.id,
                    "moderated_by_display_name": moderator.display_name,
                },
            )
            if result.rowcount == 0:
                return None

            comment = await self._fetch_comment(conn, comment_id)
            await self._write_audit(conn, audit)
        return comment

    async def delete_comment(
        self, comment_id: str, audit: ModerationAuditLog | None = None
    ) -> bool:
        async with self.engine.begin() as conn:
            result = await conn.execute(
                text("DELETE FROM comments WHERE id = :id"), {"id": comment_id}
            )
            if result.rowcount == 0:
                return False
            await self._write_audit(conn, audit)
        return True

    async def delete_reply(
        self,
        comment_id: str,
        reply_id: str,
        audit: ModerationAuditLog | None = None,
    ) -> bool:
        async with self.engine.begin() as conn:
            result = await conn.execute(
                text(
                    "DELETE FROM comment_replies "
                    "WHERE id = :reply_id AND comment_id = :comment_id"
                ),
                {"reply_id": reply_id, "comment_id": comment_id},
            )
            if result.rowcount == 0:
                return False
            await self._write_audit(conn, audit)
        return True

    # ==========================================================================
    # Audit
    # ==========================================================================

    def _audit_params(self, entry: ModerationAuditLog) -> dict[str, Any]:
        return {
            "id": entry.id,
            "action": entry.action.value,
            "comment_id": entry.comment_id,
            "reply_id": entry.reply_id,
            "admin_id": entry.admin_id,
            "admin_display_name": entry.admin_display_name,
            "token_id": entry.token_id,
            "token_source": entry.token_source.value,
            "metadata": entry.metadata_json(),
            "created_at": self.bind_timestamp(entry.created_at),
        }

    async def _write_audit(
        self, conn: AsyncConnection, entry: ModerationAuditLog | None
    ) -> None:
        if entry is None:
            return
        try:
            # No savepoint: a failure aborts the enclosing transaction
            await conn.execute(INSERT_AUDIT_SQL, self._audit_params(entry))
        except SQLAlchemyError as e:
            logger.error(
                "moderation_audit_write_failed",
                action=entry.action.value,
                error_type=type(e).__name__,
            )
            raise AuditWriteError from e

    async def record_audit(self, entry: ModerationAuditLog) -> None:
        async with self.engine.begin() as conn:
            await self._write_audit(conn, entry)

    async def list_audits(self, limit: int) -> list[ModerationAuditLog]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {AUDIT_COLUMNS} FROM comment_audit_logs "
                    "ORDER BY created_at DESC LIMIT :limit"
                ),
                {"limit": limit},
            )
            return [ModerationAuditLog.from_row(row) for row in result]


def format_timestamp(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO text, so lexical order equals time order."""
    if value is None:
        return None
    return value.astimezone(UTC).isoformat(timespec="microseconds")
