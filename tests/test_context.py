"""Tests for request context and log processors."""

from foamsanat.core.context import (
    RequestContext,
    clear_context,
    get_admin_id,
    get_client_id,
    get_context,
    get_request_id,
    set_request_id,
)
from foamsanat.core.logging import (
    add_context_processor,
    filter_sensitive_data,
    hash_identifier,
)


class TestRequestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_sets_and_restores_values(self):
        set_request_id("outer")

        with RequestContext(request_id="inner", client_id="abc", admin_id="mod-1"):
            assert get_request_id() == "inner"
            assert get_client_id() == "abc"
            assert get_admin_id() == "mod-1"

        assert get_request_id() == "outer"
        assert get_client_id() is None
        assert get_admin_id() is None

    def test_generates_request_id(self):
        with RequestContext() as ctx:
            assert ctx.request_id is None
            assert get_request_id()

        assert get_request_id() == ""

    def test_get_context_skips_unset(self):
        assert get_context() == {}

        with RequestContext(request_id="req-1", admin_id="mod-1"):
            assert get_context() == {"request_id": "req-1", "admin_id": "mod-1"}


class TestLogProcessors:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_context_is_added_without_overriding(self):
        with RequestContext(request_id="req-1", client_id="abc"):
            event = add_context_processor(
                None, "info", {"event": "x", "client_id": "explicit"}
            )

        assert event["request_id"] == "req-1"
        assert event["client_id"] == "explicit"

    def test_masks_sensitive_keys(self):
        event = filter_sensitive_data(
            None,
            "info",
            {
                "event": "x",
                "session_key": "supersecretvalue",
                "email": "jane@example.com",
                "token": "abcd",
                "status": "approved",
            },
        )

        assert event["session_key"] == "su" + "*" * 12 + "ue"
        assert event["email"] == "ja" + "*" * 12 + "om"
        assert event["token"] == "***"
        assert event["status"] == "approved"

    def test_token_metadata_is_kept(self):
        event = filter_sensitive_data(
            None,
            "info",
            {
                "token_id": "tok-123",
                "token_source": "session",
                "token_expires_at": "2026-01-01T00:00:00+00:00",
            },
        )

        assert event == {
            "token_id": "tok-123",
            "token_source": "session",
            "token_expires_at": "2026-01-01T00:00:00+00:00",
        }

    def test_masks_nested_dicts(self):
        event = filter_sensitive_data(
            None, "info", {"headers": {"Authorization": "Bearer abcdef"}}
        )

        assert event["headers"]["Authorization"] == "Be" + "*" * 9 + "ef"

    def test_hash_identifier_is_short_and_stable(self):
        digest = hash_identifier("203.0.113.7")

        assert len(digest) == 16
        assert digest == hash_identifier("203.0.113.7")
        assert digest != hash_identifier("203.0.113.8")
