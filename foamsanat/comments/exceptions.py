"""Comment domain errors.

Every error carries a client-safe message, a machine-readable ``code`` and
the HTTP status it maps to. Storage errors also carry a retry hint.
"""

from fastapi import status


class CommentError(Exception):
    """Base comment error."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: str = "comment_error",
        retry_after: int | None = None,
    ):
        self.message = message
        self.code = code
        self.retry_after = retry_after
        super().__init__(message)


class InvalidPayloadError(CommentError):
    """Request body is not valid JSON."""

    def __init__(self, message: str = "Invalid JSON payload."):
        super().__init__(message, "invalid_payload")


class CommentValidationError(CommentError):
    """Submitted comment failed validation."""

    def __init__(self, message: str):
        super().__init__(message, "validation_error")


class InvalidStatusError(CommentError):
    """Moderation status is not one of the allowed values."""

    def __init__(self, message: str = "A valid status must be provided."):
        super().__init__(message, "invalid_status")


class AdminAuthorizationError(CommentError):
    """Missing or invalid admin credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Admin authorization required."):
        super().__init__(message, "unauthorized")


class ForbiddenOriginError(CommentError):
    """Request came from an origin outside the allowlist."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Request origin is not allowed."):
        super().__init__(message, "forbidden_origin")


class CaptchaFailedError(CommentError):
    """CAPTCHA token missing or rejected by the provider."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "CAPTCHA verification failed."):
        super().__init__(message, "captcha_failed")


class CommentNotFoundError(CommentError):
    """Comment not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Comment not found."):
        super().__init__(message, "comment_not_found")


class ReplyNotFoundError(CommentError):
    """Reply not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Reply not found."):
        super().__init__(message, "reply_not_found")


class DuplicateCommentError(CommentError):
    """Same product, email and text already submitted."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str = (
            "This comment has already been submitted and is awaiting moderation."
        ),
    ):
        super().__init__(message, "duplicate_comment")


class RateLimitExceededError(CommentError):
    """Rate limit exceeded."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(
        self,
        retry_after: int,
        message: str = "Too many comments submitted. Please try again later.",
    ):
        super().__init__(message, "rate_limited", retry_after=retry_after)


class SpamDetectedError(CommentError):
    """Spam detected in comment."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(
        self,
        message: str = "Comment appears to be spam. Please revise and try again.",
    ):
        super().__init__(message, "spam_detected")


class AdminMisconfiguredError(CommentError):
    """No static token or signing secret is configured."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self, message: str = "Admin authentication is not configured."
    ):
        super().__init__(message, "admin_auth_not_configured")


class AuditWriteError(CommentError):
    """Audit row could not be written; the moderation action was rolled back."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Unable to record moderation audit."):
        super().__init__(message, "audit_failed")


class StorageUnavailableError(CommentError):
    """Comment storage is offline."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, code: str, retry_after: int):
        super().__init__(message, code, retry_after=retry_after)


class CaptchaUnavailableError(CommentError):
    """CAPTCHA provider could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(
        self,
        message: str = "CAPTCHA verification is temporarily unavailable.",
        retry_after: int = 60,
    ):
        super().__init__(message, "captcha_unavailable", retry_after=retry_after)


class StorageInitializationError(Exception):
    """Storage engine could not be opened or migrated.

    Never shown to clients; the storage manager turns it into an offline
    status with the carried ``code``.
    """

    def __init__(self, message: str, code: str):
        self.code = code
        super().__init__(message)
