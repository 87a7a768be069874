"""Tests for request origin checks and client identification."""

import pytest

from foamsanat.config.settings import Settings
from foamsanat.core.security import (
    check_request_origin,
    get_allowed_origins,
    get_client_identifier,
)


ALLOWED = frozenset({"https://foamsanat.com", "http://localhost:3000"})
TRUSTED = {"127.0.0.1", "10.0.0.1"}


class TestGetAllowedOrigins:
    def test_includes_site_local_and_extra_origins(self) -> None:
        settings = Settings(
            _env_file=None,
            site_url="https://shop.foamsanat.com/products",
            allowed_origins="https://preview.foamsanat.com, https://staging.test",
        )

        origins = get_allowed_origins(settings)

        assert "https://shop.foamsanat.com" in origins
        assert "http://localhost:3000" in origins
        assert "https://preview.foamsanat.com" in origins
        assert "https://staging.test" in origins


class TestCheckRequestOrigin:
    def test_no_headers_allowed(self) -> None:
        assert check_request_origin(None, None, ALLOWED) is None

    def test_allowed_origin(self) -> None:
        assert check_request_origin("https://foamsanat.com", None, ALLOWED) is None

    def test_foreign_origin(self) -> None:
        assert (
            check_request_origin("https://evil.test", None, ALLOWED)
            == "Request origin is not allowed."
        )

    def test_allowed_referer_path_ignored(self) -> None:
        referer = "https://foamsanat.com/products/mattress-01?tab=reviews"
        assert check_request_origin(None, referer, ALLOWED) is None

    @pytest.mark.parametrize("referer", ["https://evil.test/page", "not a url"])
    def test_foreign_referer(self, referer: str) -> None:
        assert (
            check_request_origin(None, referer, ALLOWED)
            == "Request referer is not allowed."
        )


class TestGetClientIdentifier:
    def test_forwarded_for_from_trusted_proxy(self) -> None:
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
        assert get_client_identifier(headers, "10.0.0.1", TRUSTED) == "203.0.113.7"

    def test_real_ip_from_trusted_proxy(self) -> None:
        headers = {"x-real-ip": " 198.51.100.2 "}
        assert get_client_identifier(headers, "127.0.0.1", TRUSTED) == "198.51.100.2"

    def test_forwarded_for_ignored_from_untrusted_peer(self) -> None:
        headers = {"x-forwarded-for": "203.0.113.7"}
        assert get_client_identifier(headers, "192.0.2.50", TRUSTED) == "192.0.2.50"

    def test_unknown_without_peer(self) -> None:
        assert get_client_identifier({}, None, TRUSTED) == "unknown"
