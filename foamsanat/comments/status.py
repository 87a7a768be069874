"""Comment storage availability.

Every comments response advertises ``X-Comments-Status``. Offline responses
also carry ``X-Comments-Error-Code`` and ``Retry-After``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from foamsanat.comments.exceptions import StorageUnavailableError


STATUS_HEADER = "X-Comments-Status"
ERROR_CODE_HEADER = "X-Comments-Error-Code"

READ_ONLY_ENVIRONMENT = "COMMENTS_DB_READ_ONLY_ENVIRONMENT"
STORAGE_UNAVAILABLE = "COMMENTS_STORAGE_UNAVAILABLE"

READ_ONLY_MESSAGE = (
    "Comments are disabled because persistent storage is not configured "
    "in this environment."
)
UNAVAILABLE_MESSAGE = "Comments are currently unavailable. Please try again later."


@dataclass
class StorageMetrics:
    """Initialization attempt counters."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "lastAttemptAt": iso(self.last_attempt_at),
            "lastSuccessAt": iso(self.last_success_at),
            "lastFailureAt": iso(self.last_failure_at),
        }


@dataclass
class StorageStatus:
    ready: bool
    backend: str
    error_code: str | None = None
    retry_after_seconds: int | None = None
    metrics: StorageMetrics = field(default_factory=StorageMetrics)

    @property
    def state(self) -> str:
        return "ready" if self.ready else "offline"

    @property
    def message(self) -> str:
        if self.error_code == READ_ONLY_ENVIRONMENT:
            return READ_ONLY_MESSAGE
        return UNAVAILABLE_MESSAGE

    def to_error(self) -> StorageUnavailableError:
        return StorageUnavailableError(
            self.message,
            self.error_code or STORAGE_UNAVAILABLE,
            self.retry_after_seconds or 0,
        )


def availability_headers(
    ready: bool,
    error_code: str | None = None,
    retry_after_seconds: int | None = None,
) -> dict[str, str]:
    """Headers describing comment storage availability."""
    headers = {STATUS_HEADER: "ready" if ready else "offline"}
    if not ready:
        headers[ERROR_CODE_HEADER] = error_code or STORAGE_UNAVAILABLE
        if retry_after_seconds:
            headers["Retry-After"] = str(retry_after_seconds)
    return headers
