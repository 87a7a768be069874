"""Moderator authentication.

Two credentials are accepted on ``Authorization: Bearer <token>``:
- the static admin token (``COMMENTS_ADMIN_TOKEN``), compared in constant time
- a short-lived signed session token (HS256 JWT) minted by ``issue_session``

Signing secrets support rotation: the first secret signs, every configured
secret verifies.
"""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt

from foamsanat.comments.exceptions import (
    AdminAuthorizationError,
    AdminMisconfiguredError,
)
from foamsanat.comments.models import TokenSource
from foamsanat.config.settings import Settings
from foamsanat.core.logging import get_logger


logger = get_logger(__name__)

DEFAULT_ADMIN_ID = "comments-admin"
DEFAULT_ADMIN_DISPLAY_NAME = "Comments Admin"
TOKEN_TYPE = "comments-admin"


@dataclass(frozen=True)
class AuthenticatedAdmin:
    """Moderator identity resolved from a bearer credential."""

    id: str
    display_name: str
    source: TokenSource
    token_id: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class AdminSession:
    """Freshly issued session token."""

    token: str
    token_id: str
    admin_id: str
    display_name: str
    issued_at: datetime
    expires_at: datetime


def get_token_from_header(authorization: str | None) -> str | None:
    """Extract the token from a ``Bearer`` authorization header."""
    if not authorization:
        return None

    parts = authorization.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":  # noqa: PLR2004
        return None

    token = parts[1].strip()
    return token or None


def _clean(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


class AdminAuthenticator:
    """Validates admin credentials and mints session tokens."""

    def __init__(
        self,
        static_token: str | None,
        signing_secrets: list[str],
        session_key: str | None = None,
        algorithm: str = "HS256",
        default_ttl_minutes: int = 180,
        max_ttl_minutes: int = 1440,
    ) -> None:
        self.static_token = static_token or None
        self.signing_secrets = [s for s in signing_secrets if s]
        self.session_key = session_key or None
        self.algorithm = algorithm
        self.default_ttl_minutes = default_ttl_minutes
        self.max_ttl_minutes = max_ttl_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminAuthenticator":
        return cls(
            static_token=settings.comments_admin_token,
            signing_secrets=settings.admin_token_secrets,
            session_key=settings.admin_session_key,
            algorithm=settings.comments_admin_algorithm,
            default_ttl_minutes=settings.comments_admin_token_ttl_minutes,
            max_ttl_minutes=settings.comments_admin_token_max_ttl_minutes,
        )

    @property
    def configured(self) -> bool:
        return bool(self.static_token or self.signing_secrets)

    # ==========================================================================
    # Request authentication
    # ==========================================================================

    def authenticate(self, authorization: str | None) -> AuthenticatedAdmin:
        """Resolve the moderator behind an Authorization header.

        Raises:
            AdminMisconfiguredError: No static token or signing secret is set.
            AdminAuthorizationError: Credential missing, invalid or expired.
        """
        if not self.configured:
            logger.error("admin_auth_not_configured")
            raise AdminMisconfiguredError

        token = get_token_from_header(authorization)
        if token is None:
            raise AdminAuthorizationError

        if self.static_token and secrets.compare_digest(
            token.encode("utf-8"), self.static_token.encode("utf-8")
        ):
            return AuthenticatedAdmin(
                id=DEFAULT_ADMIN_ID,
                display_name=DEFAULT_ADMIN_DISPLAY_NAME,
                source=TokenSource.STATIC,
            )

        admin = self._verify_signed(token)
        if admin is None:
            logger.warning("admin_token_rejected")
            raise AdminAuthorizationError
        return admin

    def _verify_signed(self, token: str) -> AuthenticatedAdmin | None:
        for secret in self.signing_secrets:
            try:
                payload = jwt.decode(
                    token,
                    secret,
                    algorithms=[self.algorithm],
                    options={"require_iat": True, "require_exp": True},
                )
            except JWTError:
                continue

            if payload.get("type") != TOKEN_TYPE:
                return None

            return AuthenticatedAdmin(
                id=_clean(payload.get("sub") or payload.get("adminId"), DEFAULT_ADMIN_ID),
                display_name=_clean(
                    payload.get("name") or payload.get("displayName"),
                    DEFAULT_ADMIN_DISPLAY_NAME,
                ),
                source=TokenSource.SIGNED,
                token_id=payload.get("jti"),
                issued_at=datetime.fromtimestamp(payload["iat"], UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            )
        return None

    # ==========================================================================
    # Session issuance
    # ==========================================================================

    def check_session_key(self, provided: str | None) -> None:
        """Constant-time comparison of the session-minting key.

        Raises:
            AdminAuthorizationError: Key missing or different.
        """
        if (
            not self.session_key
            or not provided
            or not secrets.compare_digest(
                provided.encode("utf-8"), self.session_key.encode("utf-8")
            )
        ):
            logger.warning("admin_session_unauthorized")
            raise AdminAuthorizationError("Admin session key is invalid.")

    def resolve_ttl(self, ttl_minutes: Any) -> int:
        """Clamp a requested lifetime to [1, max] minutes."""
        if isinstance(ttl_minutes, bool) or not isinstance(ttl_minutes, int | float):
            ttl = self.default_ttl_minutes
        else:
            ttl = int(ttl_minutes)
        return min(max(ttl, 1), self.max_ttl_minutes)

    def issue_session(
        self,
        admin_id: Any = None,
        display_name: Any = None,
        ttl_minutes: Any = None,
    ) -> AdminSession:
        """Mint a signed session token with the primary secret.

        Args:
            admin_id: Moderator identifier (defaults to ``comments-admin``).
            display_name: Name shown on replies and audit rows.
            ttl_minutes: Requested lifetime, clamped to the allowed range.

        Returns:
            AdminSession with the encoded token and its timestamps.

        Raises:
            AdminMisconfiguredError: No signing secret is configured.
        """
        if not self.signing_secrets:
            logger.error("admin_session_secret_missing")
            raise AdminMisconfiguredError("Unable to create admin session.")

        resolved_id = _clean(admin_id, DEFAULT_ADMIN_ID)
        resolved_name = _clean(display_name, DEFAULT_ADMIN_DISPLAY_NAME)
        ttl = self.resolve_ttl(ttl_minutes)

        # JWT timestamps have second precision
        issued_at = datetime.now(UTC).replace(microsecond=0)
        expires_at = issued_at + timedelta(minutes=ttl)
        token_id = str(uuid4())

        token = jwt.encode(
            {
                "sub": resolved_id,
                "adminId": resolved_id,
                "name": resolved_name,
                "displayName": resolved_name,
                "iat": issued_at,
                "exp": expires_at,
                "jti": token_id,
                "type": TOKEN_TYPE,
            },
            self.signing_secrets[0],
            algorithm=self.algorithm,
        )

        logger.info(
            "admin_session_issued",
            issued_admin=resolved_id,
            ttl_minutes=ttl,
            token_id=token_id,
        )

        return AdminSession(
            token=token,
            token_id=token_id,
            admin_id=resolved_id,
            display_name=resolved_name,
            issued_at=issued_at,
            expires_at=expires_at,
        )
