"""Abstract comment storage interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from foamsanat.comments.models import (
    Comment,
    CommentReply,
    CommentStatus,
    Moderator,
    ModerationAuditLog,
)


@dataclass
class StorageHealth:
    """Engine-level health snapshot."""

    backend: str
    ready: bool
    error_code: str | None = None
    last_error_at: datetime | None = None
    connections: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "backend": self.backend,
            "ready": self.ready,
            "errorCode": self.error_code,
            "lastErrorAt": self.last_error_at.isoformat() if self.last_error_at else None,
        }
        if self.connections:
            data["connections"] = dict(self.connections)
        return data


class CommentStorage(ABC):
    """Persistence for comments, replies and moderation audit rows.

    Mutating moderation methods accept an optional audit entry. When given,
    it is inserted in the same transaction as the mutation; if the insert
    fails the mutation is rolled back and ``AuditWriteError`` is raised.
    """

    backend: str

    @abstractmethod
    async def initialize(self) -> None:
        """Open the engine and apply pending migrations.

        Raises:
            StorageInitializationError: Engine could not be opened or migrated.
        """

    @abstractmethod
    def is_ready(self) -> bool: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def get_approved_comments(self, product_id: str) -> list[Comment]:
        """Approved comments, newest first, each with approved replies oldest first."""

    @abstractmethod
    async def has_duplicate_comment(
        self, product_id: str, email: str, comment_text: str
    ) -> bool: ...

    @abstractmethod
    async def create_comment(self, comment: Comment) -> Comment:
        """Insert a comment.

        Raises:
            DuplicateCommentError: The unique (product, email, text) index fired.
        """

    @abstractmethod
    async def create_reply(
        self, reply: CommentReply, audit: ModerationAuditLog | None = None
    ) -> CommentReply:
        """Insert a reply after confirming its parent exists.

        Raises:
            CommentNotFoundError: Parent comment is missing.
        """

    @abstractmethod
    async def update_comment_status(
        self,
        comment_id: str,
        status: CommentStatus,
        moderator: Moderator,
        audit: ModerationAuditLog | None = None,
    ) -> Comment | None:
        """Set status and moderation stamp. None when the comment is missing."""

    @abstractmethod
    async def delete_comment(
        self, comment_id: str, audit: ModerationAuditLog | None = None
    ) -> bool: ...

    @abstractmethod
    async def delete_reply(
        self,
        comment_id: str,
        reply_id: str,
        audit: ModerationAuditLog | None = None,
    ) -> bool: ...

    @abstractmethod
    async def record_audit(self, entry: ModerationAuditLog) -> None: ...

    @abstractmethod
    async def list_audits(self, limit: int) -> list[ModerationAuditLog]:
        """Audit rows, newest first."""

    @abstractmethod
    async def get_health(self) -> StorageHealth: ...
