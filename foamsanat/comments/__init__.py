"""Product comment module.

Provides the comment moderation system with:
- Public submission behind validation, CAPTCHA, rate limit and spam gates
- Moderation workflow (approve, reject, delete, reply)
- Transactional audit trail
- SQLite and Postgres storage

Note: Router is not exported here to avoid circular imports.
Import directly from foamsanat.comments.router when needed.
"""

from .models import (
    Comment,
    CommentReply,
    CommentStatus,
    ModerationAction,
    ModerationAuditLog,
    TokenSource,
)


__all__ = [
    "Comment",
    "CommentReply",
    "CommentStatus",
    "ModerationAction",
    "ModerationAuditLog",
    "TokenSource",
]
