"""Comment system service layer.

Business logic for:
- Public listing and submission (origin, validation, CAPTCHA, rate limit,
  spam and duplicate gates)
- Moderation: status changes, deletions and replies, each audited in the
  same transaction as the change
- Admin session issuance and audit retrieval
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

import orjson
from pydantic import ValidationError

from foamsanat.core.context import set_admin_id
from foamsanat.core.logging import get_logger
from foamsanat.core.security import check_request_origin

from .audit import build_audit_entry, clamp_audit_limit, log_audit_entry
from .auth import AdminAuthenticator, AuthenticatedAdmin
from .captcha import TurnstileVerifier
from .exceptions import (
    CommentNotFoundError,
    CommentValidationError,
    DuplicateCommentError,
    ForbiddenOriginError,
    InvalidPayloadError,
    InvalidStatusError,
    RateLimitExceededError,
    ReplyNotFoundError,
    SpamDetectedError,
)
from .models import (
    CommentStatus,
    ModerationAction,
    Moderator,
    create_comment,
    create_reply,
    utcnow,
)
from .rate_limit import RateLimiter
from .schemas import (
    AdminComment,
    AdminSessionRequest,
    AdminSessionResponse,
    AuditLogResponse,
    CreateReplyRequest,
    ModerationInfo,
    PublicComment,
    ReplyResponse,
    UpdateStatusRequest,
)
from .status import StorageStatus
from .storage.base import StorageHealth
from .storage.manager import StorageManager
from .validation import detect_spam, validate_comment_payload


logger = get_logger(__name__)


def parse_json_body(body: bytes) -> Any:
    """Decode a JSON request body.

    Raises:
        InvalidPayloadError: Body is empty or not valid JSON.
    """
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise InvalidPayloadError from e


def _moderation_info(
    admin: AuthenticatedAdmin, moderated_at: datetime | None = None
) -> ModerationInfo:
    return ModerationInfo(
        admin_id=admin.id,
        admin_display_name=admin.display_name,
        moderated_at=moderated_at or utcnow(),
    )


class CommentService:
    """Service for comment submission and moderation."""

    def __init__(
        self,
        storage: StorageManager,
        rate_limiter: RateLimiter,
        captcha: TurnstileVerifier,
        authenticator: AdminAuthenticator,
        allowed_origins: Iterable[str],
    ):
        self.storage = storage
        self.rate_limiter = rate_limiter
        self.captcha = captcha
        self.authenticator = authenticator
        self.allowed_origins = frozenset(allowed_origins)

    # ==========================================================================
    # Availability
    # ==========================================================================

    async def get_status(self) -> StorageStatus:
        return await self.storage.ensure_ready()

    async def get_health(self) -> tuple[StorageStatus, StorageHealth | None]:
        """Storage status plus engine health when storage is up."""
        status = await self.storage.ensure_ready()
        if not status.ready:
            return status, None
        storage = await self.storage.get_storage()
        return status, await storage.get_health()

    # ==========================================================================
    # Public operations
    # ==========================================================================

    async def list_approved(self, product_id: str) -> list[PublicComment]:
        """Approved comments for a product, newest first, without emails."""
        storage = await self.storage.get_storage()
        comments = await storage.get_approved_comments(product_id)
        return [PublicComment.from_comment(comment) for comment in comments]

    async def submit_comment(
        self,
        body: bytes,
        client_id: str,
        origin: str | None = None,
        referer: str | None = None,
    ) -> PublicComment:
        """Accept a public submission as a pending comment.

        Args:
            body: Raw request body (JSON).
            client_id: Rate-limit key for the caller.
            origin: Origin header, if sent.
            referer: Referer header, if sent.

        Returns:
            Public projection of the stored comment.

        Raises:
            ForbiddenOriginError: Origin or referer outside the allowlist.
            InvalidPayloadError: Body is not JSON.
            CommentValidationError: A field failed validation.
            StorageUnavailableError: Storage is offline.
            CaptchaFailedError / CaptchaUnavailableError: CAPTCHA gate.
            RateLimitExceededError / SpamDetectedError: Policy rejection.
            DuplicateCommentError: Same comment already submitted.
        """
        origin_error = check_request_origin(origin, referer, self.allowed_origins)
        if origin_error:
            logger.warning("comment_origin_rejected", origin=origin, referer=referer)
            raise ForbiddenOriginError(origin_error)

        result = validate_comment_payload(parse_json_body(body))
        if result.sanitized is None:
            raise CommentValidationError(result.error or "Invalid comment payload.")
        payload = result.sanitized

        storage = await self.storage.get_storage()

        await self.captcha.verify(payload.turnstile_token, remote_ip=client_id)

        limit = await self.rate_limiter.hit(client_id)
        if limit.limited:
            logger.warning(
                "comment_rate_limited",
                count=limit.count,
                retry_after_seconds=limit.retry_after_seconds,
            )
            raise RateLimitExceededError(retry_after=limit.retry_after_seconds or 1)

        spam_reason = detect_spam(payload.text)
        if spam_reason:
            logger.warning("comment_spam_detected", product_id=payload.product_id)
            raise SpamDetectedError(spam_reason)

        if await storage.has_duplicate_comment(
            payload.product_id, payload.email, payload.text
        ):
            raise DuplicateCommentError

        comment = await storage.create_comment(
            create_comment(
                product_id=payload.product_id,
                rating=payload.rating,
                author=payload.author,
                email=payload.email,
                text=payload.text,
            )
        )

        logger.info(
            "comment_submitted",
            comment_id=comment.id,
            product_id=comment.product_id,
            rating=comment.rating,
        )
        return PublicComment.from_comment(comment)

    # ==========================================================================
    # Moderation
    # ==========================================================================

    def authenticate(self, authorization: str | None) -> AuthenticatedAdmin:
        """Resolve the moderator and bind it to the request log context."""
        admin = self.authenticator.authenticate(authorization)
        set_admin_id(admin.id)
        return admin

    async def update_status(
        self, comment_id: str, body: bytes, admin: AuthenticatedAdmin
    ) -> tuple[AdminComment, ModerationInfo]:
        payload = parse_json_body(body)
        try:
            request = UpdateStatusRequest.model_validate(payload)
        except ValidationError as e:
            raise InvalidStatusError from e

        storage = await self.storage.get_storage()
        audit = build_audit_entry(
            ModerationAction.UPDATE_STATUS,
            admin,
            comment_id=comment_id,
            status=request.status.value,
        )
        comment = await storage.update_comment_status(
            comment_id,
            request.status,
            Moderator(id=admin.id, display_name=admin.display_name),
            audit=audit,
        )
        if comment is None:
            raise CommentNotFoundError

        log_audit_entry(audit, admin)
        return AdminComment.model_validate(comment), _moderation_info(
            admin, comment.moderated_at
        )

    async def delete_comment(
        self, comment_id: str, admin: AuthenticatedAdmin
    ) -> ModerationInfo:
        storage = await self.storage.get_storage()
        audit = build_audit_entry(ModerationAction.DELETE_COMMENT, admin, comment_id)
        if not await storage.delete_comment(comment_id, audit=audit):
            raise CommentNotFoundError

        log_audit_entry(audit, admin)
        return _moderation_info(admin)

    async def create_reply(
        self, comment_id: str, body: bytes, admin: AuthenticatedAdmin
    ) -> ReplyResponse:
        payload = parse_json_body(body)
        try:
            request = CreateReplyRequest.model_validate(payload)
        except ValidationError as e:
            raise CommentValidationError("Reply text must be provided.") from e

        storage = await self.storage.get_storage()
        reply = create_reply(
            comment_id=comment_id,
            author=admin.display_name,
            text=request.text,
            is_admin=True,
            admin_id=admin.id,
            admin_display_name=admin.display_name,
            status=CommentStatus.APPROVED,
        )
        audit = build_audit_entry(
            ModerationAction.REPLY_COMMENT, admin, comment_id, reply_id=reply.id
        )
        reply = await storage.create_reply(reply, audit=audit)

        log_audit_entry(audit, admin)
        return ReplyResponse.from_reply(reply)

    async def delete_reply(
        self, comment_id: str, reply_id: str, admin: AuthenticatedAdmin
    ) -> ModerationInfo:
        storage = await self.storage.get_storage()
        audit = build_audit_entry(
            ModerationAction.DELETE_REPLY, admin, comment_id, reply_id=reply_id
        )
        if not await storage.delete_reply(comment_id, reply_id, audit=audit):
            raise ReplyNotFoundError

        log_audit_entry(audit, admin)
        return _moderation_info(admin)

    async def list_audits(self, limit: Any = None) -> list[AuditLogResponse]:
        """Most recent audit rows, newest first."""
        storage = await self.storage.get_storage()
        entries = await storage.list_audits(clamp_audit_limit(limit))
        return [AuditLogResponse.from_entry(entry) for entry in entries]

    # ==========================================================================
    # Admin sessions
    # ==========================================================================

    def issue_admin_session(
        self, session_key: str | None, body: bytes
    ) -> AdminSessionResponse:
        """Mint a signed moderator session.

        Raises:
            AdminAuthorizationError: Session key missing or wrong.
            InvalidPayloadError: Body is not a JSON object.
            AdminMisconfiguredError: No signing secret configured.
        """
        self.authenticator.check_session_key(session_key)

        payload = parse_json_body(body) if body.strip() else {}
        try:
            request = AdminSessionRequest.model_validate(payload)
        except ValidationError as e:
            raise InvalidPayloadError from e

        session = self.authenticator.issue_session(
            admin_id=request.admin_id,
            display_name=request.display_name,
            ttl_minutes=request.ttl_minutes,
        )
        return AdminSessionResponse(
            token=session.token,
            admin_id=session.admin_id,
            display_name=session.display_name,
            issued_at=session.issued_at,
            expires_at=session.expires_at,
            token_id=session.token_id,
        )
