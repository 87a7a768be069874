"""Domain entities for product comments.

- Comment: a customer review of one product, moderated before it is public
- CommentReply: a moderator answer attached to a comment
- ModerationAuditLog: append-only record of every moderation action

Rows come from either storage engine. SQLite returns timestamps as ISO text
and metadata as JSON text, Postgres returns native values; ``from_row``
accepts both.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4


class CommentStatus(str, Enum):
    """Moderation state of a comment or reply."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ModerationAction(str, Enum):
    """Types of moderator actions for audit logging."""

    UPDATE_STATUS = "update-status"
    DELETE_COMMENT = "delete-comment"
    REPLY_COMMENT = "reply-comment"
    DELETE_REPLY = "delete-reply"


class TokenSource(str, Enum):
    """How the moderator proved their identity."""

    STATIC = "static"
    SIGNED = "signed"


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Normalise a stored timestamp to an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_metadata(value: Any) -> dict[str, Any]:
    """Decode stored audit metadata, tolerating malformed or non-object JSON."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Moderator:
    """Identity recorded on a moderated comment."""

    id: str
    display_name: str


@dataclass
class CommentReply:
    """Reply attached to a comment."""

    id: str
    comment_id: str
    author: str
    text: str
    is_admin: bool
    admin_id: str | None
    admin_display_name: str | None
    responded_at: datetime
    status: CommentStatus
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "CommentReply":
        """Create CommentReply from a database row."""
        created_at = parse_timestamp(row.created_at)
        return cls(
            id=row.id,
            comment_id=row.comment_id,
            author=row.author,
            text=row.text,
            is_admin=bool(row.is_admin),
            admin_id=row.admin_id,
            admin_display_name=row.admin_display_name,
            responded_at=parse_timestamp(row.responded_at) or created_at,
            status=CommentStatus(row.status),
            created_at=created_at,
        )


@dataclass
class Comment:
    """Comment entity with full details (email included)."""

    id: str
    product_id: str
    rating: int
    author: str
    email: str
    text: str
    status: CommentStatus
    created_at: datetime
    moderated_at: datetime | None = None
    moderated_by_id: str | None = None
    moderated_by_display_name: str | None = None
    replies: list[CommentReply] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from a database row."""
        return cls(
            id=row.id,
            product_id=row.product_id,
            rating=int(row.rating),
            author=row.author,
            email=row.email,
            text=row.text,
            status=CommentStatus(row.status),
            created_at=parse_timestamp(row.created_at),
            moderated_at=parse_timestamp(row.moderated_at),
            moderated_by_id=row.moderated_by_id,
            moderated_by_display_name=row.moderated_by_display_name,
        )


@dataclass
class ModerationAuditLog:
    """Audit log entry for moderator actions."""

    id: str
    action: ModerationAction
    comment_id: str | None
    reply_id: str | None
    admin_id: str
    admin_display_name: str
    token_id: str | None
    token_source: TokenSource
    metadata: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "ModerationAuditLog":
        """Create entity from a database row."""
        return cls(
            id=row.id,
            action=ModerationAction(row.action),
            comment_id=row.comment_id,
            reply_id=row.reply_id,
            admin_id=row.admin_id,
            admin_display_name=row.admin_display_name,
            token_id=row.token_id,
            token_source=TokenSource(row.token_source),
            metadata=parse_metadata(row.metadata),
            created_at=parse_timestamp(row.created_at),
        )

    def metadata_json(self) -> str:
        return json.dumps(self.metadata, default=str, separators=(",", ":"))


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_comment(
    product_id: str,
    rating: int,
    author: str,
    email: str,
    text: str,
    status: CommentStatus = CommentStatus.PENDING,
) -> Comment:
    """Create a new comment with default values."""
    return Comment(
        id=str(uuid4()),
        product_id=product_id,
        rating=rating,
        author=author,
        email=email.lower(),
        text=text,
        status=status,
        created_at=utcnow(),
    )


def create_reply(
    comment_id: str,
    author: str,
    text: str,
    is_admin: bool = True,
    admin_id: str | None = None,
    admin_display_name: str | None = None,
    status: CommentStatus = CommentStatus.APPROVED,
    responded_at: datetime | None = None,
) -> CommentReply:
    """Create a new reply. ``responded_at`` defaults to the creation time."""
    now = utcnow()
    return CommentReply(
        id=str(uuid4()),
        comment_id=comment_id,
        author=author,
        text=text,
        is_admin=is_admin,
        admin_id=admin_id,
        admin_display_name=admin_display_name,
        responded_at=responded_at or now,
        status=status,
        created_at=now,
    )


def create_audit_log(
    action: ModerationAction,
    admin_id: str,
    admin_display_name: str,
    token_source: TokenSource,
    comment_id: str | None = None,
    reply_id: str | None = None,
    token_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ModerationAuditLog:
    """Create a moderation audit log entry.

    Args:
        action: Type of moderator action.
        admin_id: ID of the moderator performing the action.
        admin_display_name: Moderator name at the time of the action.
        token_source: Whether the static token or a signed session was used.
        comment_id: Affected comment (optional).
        reply_id: Affected reply (optional).
        token_id: Session token ``jti`` for signed sessions.
        metadata: Additional details about the action.

    Returns:
        ModerationAuditLog instance ready to be inserted.
    """
    return ModerationAuditLog(
        id=str(uuid4()),
        action=action,
        comment_id=comment_id,
        reply_id=reply_id,
        admin_id=admin_id,
        admin_display_name=admin_display_name,
        token_id=token_id,
        token_source=token_source,
        metadata=dict(metadata or {}),
        created_at=utcnow(),
    )
