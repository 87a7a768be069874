"""Cloudflare Turnstile verification.

Verification is skipped when no secret is configured and in the testing
environment. Outside production a missing token is tolerated with a warning;
in production it fails the submission.
"""

import httpx

from foamsanat.comments.exceptions import CaptchaFailedError, CaptchaUnavailableError
from foamsanat.config.settings import Settings
from foamsanat.core.logging import get_logger


logger = get_logger(__name__)


class TurnstileVerifier:
    """Checks CAPTCHA tokens against the Turnstile siteverify endpoint."""

    def __init__(
        self,
        secret_key: str | None,
        verify_url: str,
        timeout: float = 5.0,
        enforce_token: bool = False,
        enabled: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        self.enforce_token = enforce_token
        self.enabled = enabled and bool(secret_key)
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "TurnstileVerifier":
        return cls(
            secret_key=settings.turnstile_secret_key,
            verify_url=settings.turnstile_verify_url,
            timeout=settings.turnstile_timeout_seconds,
            enforce_token=settings.is_production,
            enabled=not settings.is_testing,
            client=client,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def verify(self, token: str | None, remote_ip: str | None = None) -> None:
        """Verify a submission token.

        Raises:
            CaptchaFailedError: Token missing (when enforced) or rejected.
            CaptchaUnavailableError: Provider unreachable or returned garbage.
        """
        if not self.enabled:
            return

        if not token:
            if self.enforce_token:
                raise CaptchaFailedError
            logger.warning("captcha_token_missing")
            return

        data = {"secret": self.secret_key, "response": token}
        if remote_ip and remote_ip != "unknown":
            data["remoteip"] = remote_ip

        try:
            response = await self._get_client().post(self.verify_url, data=data)
        except httpx.HTTPError as e:
            logger.error("captcha_provider_unreachable", error_type=type(e).__name__)
            raise CaptchaUnavailableError from e

        if response.status_code != httpx.codes.OK:
            logger.warning("captcha_verification_http_error", status=response.status_code)
            raise CaptchaFailedError

        try:
            result = response.json()
        except ValueError as e:
            logger.error("captcha_invalid_response")
            raise CaptchaUnavailableError from e

        if not isinstance(result, dict) or result.get("success") is not True:
            logger.warning(
                "captcha_verification_failed",
                error_codes=result.get("error-codes") if isinstance(result, dict) else None,
            )
            raise CaptchaFailedError

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
