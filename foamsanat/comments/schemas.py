"""Pydantic schemas for the comments API.

Request models validate moderation bodies; response models render the
public and admin projections with camelCase keys.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import (
    Comment,
    CommentReply,
    CommentStatus,
    ModerationAction,
    ModerationAuditLog,
    TokenSource,
)


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ==============================================================================
# Request Schemas
# ==============================================================================


class UpdateStatusRequest(CamelModel):
    """Request to change a comment's moderation status."""

    status: CommentStatus


class CreateReplyRequest(CamelModel):
    """Request to reply to a comment as a moderator."""

    text: str = Field(..., min_length=2, max_length=2000)

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class AdminSessionRequest(CamelModel):
    """Request to mint an admin session token. All fields optional."""

    admin_id: str | None = None
    display_name: str | None = None
    ttl_minutes: Any = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class PublicReply(CamelModel):
    """Reply as shown to site visitors."""

    id: str
    author: str
    text: str
    is_admin: bool
    admin_id: str | None = None
    admin_display_name: str | None = None
    responded_at: datetime
    status: CommentStatus
    created_at: datetime


class PublicComment(CamelModel):
    """Comment as shown to site visitors. Never includes the email."""

    id: str
    product_id: str
    rating: int
    author: str
    text: str
    status: CommentStatus
    created_at: datetime
    moderated_at: datetime | None = None
    moderated_by_id: str | None = None
    moderated_by_display_name: str | None = None
    replies: list[PublicReply] = Field(default_factory=list)

    @classmethod
    def from_comment(cls, comment: Comment) -> "PublicComment":
        return cls.model_validate(comment)


class AdminComment(CamelModel):
    """Full comment returned to moderators."""

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


class ReplyResponse(CamelModel):
    """Reply echoed back after creation."""

    id: str
    author: str
    text: str
    created_at: datetime
    is_admin: bool
    status: CommentStatus

    @classmethod
    def from_reply(cls, reply: CommentReply) -> "ReplyResponse":
        return cls.model_validate(reply)


class ModerationInfo(CamelModel):
    admin_id: str
    admin_display_name: str
    moderated_at: datetime


class AuditLogResponse(CamelModel):
    """Audit row as returned to moderators."""

    id: str
    action: ModerationAction
    comment_id: str | None = None
    reply_id: str | None = None
    admin_id: str | None = None
    admin_display_name: str | None = None
    token_id: str | None = None
    token_source: TokenSource | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: ModerationAuditLog) -> "AuditLogResponse":
        return cls.model_validate(entry)


class AdminSessionResponse(CamelModel):
    token: str
    admin_id: str
    display_name: str
    issued_at: datetime
    expires_at: datetime
    token_id: str


# ==============================================================================
# Envelope Schemas
# ==============================================================================


class CommentListResponse(CamelModel):
    comments: list[PublicComment]


class CommentCreatedResponse(CamelModel):
    comment: PublicComment


class StatusUpdateResponse(CamelModel):
    comment: AdminComment
    moderation: ModerationInfo


class ModerationResultResponse(CamelModel):
    success: bool = True
    moderation: ModerationInfo


class ReplyCreatedResponse(CamelModel):
    reply: ReplyResponse


class AuditListResponse(CamelModel):
    audits: list[AuditLogResponse]
