"""Tests for moderator authentication and session tokens."""

from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from foamsanat.comments.auth import (
    DEFAULT_ADMIN_DISPLAY_NAME,
    DEFAULT_ADMIN_ID,
    TOKEN_TYPE,
    AdminAuthenticator,
    get_token_from_header,
)
from foamsanat.comments.exceptions import (
    AdminAuthorizationError,
    AdminMisconfiguredError,
)
from foamsanat.comments.models import TokenSource


@pytest.fixture
def authenticator() -> AdminAuthenticator:
    return AdminAuthenticator(
        static_token="static-admin-token",
        signing_secrets=["new-secret", "old-secret"],
        session_key="session-key",
    )


class TestGetTokenFromHeader:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("Bearer abc", "abc"),
            ("bearer   abc  ", "abc"),
            ("Basic abc", None),
            ("Bearer", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parsing(self, header: str | None, expected: str | None) -> None:
        assert get_token_from_header(header) == expected


class TestAuthenticate:
    """Tests for AdminAuthenticator.authenticate."""

    def test_static_token(self, authenticator: AdminAuthenticator) -> None:
        admin = authenticator.authenticate("Bearer static-admin-token")

        assert admin.id == DEFAULT_ADMIN_ID
        assert admin.display_name == DEFAULT_ADMIN_DISPLAY_NAME
        assert admin.source == TokenSource.STATIC
        assert admin.token_id is None

    @pytest.mark.parametrize("header", [None, "", "Bearer wrong", "Token x"])
    def test_rejects_bad_credentials(
        self, authenticator: AdminAuthenticator, header: str | None
    ) -> None:
        with pytest.raises(AdminAuthorizationError) as exc_info:
            authenticator.authenticate(header)
        assert exc_info.value.status_code == 401

    def test_unconfigured(self) -> None:
        authenticator = AdminAuthenticator(static_token=None, signing_secrets=[])

        with pytest.raises(AdminMisconfiguredError) as exc_info:
            authenticator.authenticate("Bearer anything")

        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "admin_auth_not_configured"

    def test_issued_session_round_trip(
        self, authenticator: AdminAuthenticator
    ) -> None:
        session = authenticator.issue_session(
            admin_id="maryam", display_name="Maryam", ttl_minutes=30
        )

        admin = authenticator.authenticate(f"Bearer {session.token}")

        assert admin.id == "maryam"
        assert admin.display_name == "Maryam"
        assert admin.source == TokenSource.SIGNED
        assert admin.token_id == session.token_id
        assert admin.expires_at == session.expires_at
        assert session.expires_at - session.issued_at == timedelta(minutes=30)

    def test_token_signed_with_rotated_secret(
        self, authenticator: AdminAuthenticator
    ) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "reza",
                "name": "Reza",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "jti": "token-1",
                "type": TOKEN_TYPE,
            },
            "old-secret",
            algorithm="HS256",
        )

        admin = authenticator.authenticate(f"Bearer {token}")

        assert admin.id == "reza"
        assert admin.token_id == "token-1"

    def test_expired_token_rejected(self, authenticator: AdminAuthenticator) -> None:
        issued = datetime.now(UTC) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": "reza",
                "iat": issued,
                "exp": issued + timedelta(minutes=5),
                "type": TOKEN_TYPE,
            },
            "new-secret",
            algorithm="HS256",
        )

        with pytest.raises(AdminAuthorizationError):
            authenticator.authenticate(f"Bearer {token}")

    def test_wrong_token_type_rejected(
        self, authenticator: AdminAuthenticator
    ) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {"sub": "x", "iat": now, "exp": now + timedelta(minutes=5), "type": "user"},
            "new-secret",
            algorithm="HS256",
        )

        with pytest.raises(AdminAuthorizationError):
            authenticator.authenticate(f"Bearer {token}")

    def test_unknown_secret_rejected(self, authenticator: AdminAuthenticator) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "x",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "type": TOKEN_TYPE,
            },
            "someone-elses-secret",
            algorithm="HS256",
        )

        with pytest.raises(AdminAuthorizationError):
            authenticator.authenticate(f"Bearer {token}")


class TestSessions:
    """Tests for session key checks and issuance."""

    def test_check_session_key(self, authenticator: AdminAuthenticator) -> None:
        authenticator.check_session_key("session-key")

    @pytest.mark.parametrize("provided", [None, "", "wrong"])
    def test_check_session_key_rejects(
        self, authenticator: AdminAuthenticator, provided: str | None
    ) -> None:
        with pytest.raises(AdminAuthorizationError) as exc_info:
            authenticator.check_session_key(provided)
        assert exc_info.value.message == "Admin session key is invalid."

    @pytest.mark.parametrize(
        ("requested", "expected"),
        [(None, 180), ("60", 180), (True, 180), (0, 1), (-5, 1), (45, 45), (99999, 1440)],
    )
    def test_resolve_ttl(
        self, authenticator: AdminAuthenticator, requested: object, expected: int
    ) -> None:
        assert authenticator.resolve_ttl(requested) == expected

    def test_defaults_for_blank_identity(
        self, authenticator: AdminAuthenticator
    ) -> None:
        session = authenticator.issue_session(admin_id="  ", display_name=None)

        assert session.admin_id == DEFAULT_ADMIN_ID
        assert session.display_name == DEFAULT_ADMIN_DISPLAY_NAME

    def test_signed_with_primary_secret(
        self, authenticator: AdminAuthenticator
    ) -> None:
        session = authenticator.issue_session()

        claims = jwt.decode(session.token, "new-secret", algorithms=["HS256"])

        assert claims["type"] == TOKEN_TYPE
        assert claims["jti"] == session.token_id
        assert claims["sub"] == claims["adminId"] == DEFAULT_ADMIN_ID

    def test_issue_without_secrets(self) -> None:
        authenticator = AdminAuthenticator(
            static_token="static-admin-token", signing_secrets=[]
        )

        with pytest.raises(AdminMisconfiguredError):
            authenticator.issue_session()
