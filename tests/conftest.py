"""Shared fixtures: isolated settings and an app over a temporary SQLite file."""

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")

from foamsanat.config.settings import Settings  # noqa: E402
from foamsanat.main import create_app  # noqa: E402


ADMIN_TOKEN = "static-admin-token"
SIGNING_SECRETS = "primary-signing-secret,previous-signing-secret"
SESSION_KEY = "session-minting-key"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Testing settings with admin credentials and a throwaway database."""
    return Settings(
        _env_file=None,
        environment="testing",
        debug=False,
        log_to_file=False,
        log_level="WARNING",
        log_requests=False,
        site_url="https://foamsanat.com",
        comments_storage_backend="sqlite",
        comments_sqlite_path=str(tmp_path / "comments.db"),
        comments_database_url=None,
        comments_read_only_filesystem=False,
        comments_admin_token=ADMIN_TOKEN,
        comments_admin_token_secret=SIGNING_SECRETS,
        comments_admin_session_key=SESSION_KEY,
        redis_url=None,
        turnstile_secret_key=None,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Test client running the full lifespan."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def session_key_headers() -> dict[str, str]:
    return {"x-comments-admin-session-key": SESSION_KEY}


@pytest.fixture
def comment_payload() -> dict[str, object]:
    """A submission that passes every validation and spam check."""
    return {
        "productId": "mattress-01",
        "rating": 5,
        "author": "Jane",
        "email": "jane@example.com",
        "text": "Very comfortable mattress, slept great.",
    }
