"""Moderation audit helpers.

Audit rows are written by the storage layer in the same transaction as the
mutation they describe; this module builds the entries and logs them.
"""

from typing import Any

from foamsanat.comments.auth import AuthenticatedAdmin
from foamsanat.comments.models import (
    ModerationAction,
    ModerationAuditLog,
    create_audit_log,
    utcnow,
)
from foamsanat.core.logging import get_logger


logger = get_logger(__name__)

DEFAULT_AUDIT_LIMIT = 100
MAX_AUDIT_LIMIT = 500


def clamp_audit_limit(limit: Any) -> int:
    """Coerce a requested page size into [1, 500], defaulting to 100."""
    if limit is None or limit == "":
        return DEFAULT_AUDIT_LIMIT
    try:
        value = int(float(limit))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_AUDIT_LIMIT
    return min(max(value, 1), MAX_AUDIT_LIMIT)


def build_audit_entry(
    action: ModerationAction,
    admin: AuthenticatedAdmin,
    comment_id: str | None = None,
    reply_id: str | None = None,
    **metadata: Any,
) -> ModerationAuditLog:
    """Create the audit row for one moderation action.

    The metadata always records the affected ids and ``performedAt``.
    """
    details: dict[str, Any] = {
        key: value for key, value in metadata.items() if value is not None
    }
    if comment_id:
        details["commentId"] = comment_id
    if reply_id:
        details["replyId"] = reply_id
    details["performedAt"] = utcnow().isoformat()

    return create_audit_log(
        action=action,
        admin_id=admin.id,
        admin_display_name=admin.display_name,
        token_source=admin.source,
        comment_id=comment_id,
        reply_id=reply_id,
        token_id=admin.token_id,
        metadata=details,
    )


def log_audit_entry(entry: ModerationAuditLog, admin: AuthenticatedAdmin) -> None:
    logger.info(
        "moderation_audit_recorded",
        action=entry.action.value,
        audit_id=entry.id,
        comment_id=entry.comment_id,
        reply_id=entry.reply_id,
        moderator=admin.id,
        moderator_display_name=admin.display_name,
        token_id=admin.token_id,
        token_source=admin.source.value,
        token_expires_at=admin.expires_at.isoformat() if admin.expires_at else None,
    )
