"""Process-wide comments state.

Built once in the application lifespan and stored on ``app.state.comments``;
request dependencies read it from there.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from foamsanat.config.settings import Settings
from foamsanat.core.logging import get_logger
from foamsanat.core.security import get_allowed_origins

from .auth import AdminAuthenticator
from .captcha import TurnstileVerifier
from .rate_limit import InMemoryRateLimitStore, RateLimiter, RedisRateLimitStore
from .service import CommentService
from .storage.manager import StorageManager


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = get_logger(__name__)


@dataclass
class CommentsContext:
    """Everything the comments routes need, owned by the application."""

    settings: Settings
    storage: StorageManager
    rate_limiter: RateLimiter
    captcha: TurnstileVerifier
    authenticator: AdminAuthenticator
    service: CommentService

    async def aclose(self) -> None:
        await self.captcha.aclose()
        await self.storage.close()


def build_comments_context(
    settings: Settings,
    redis: "Redis | None" = None,
    storage: StorageManager | None = None,
    captcha: TurnstileVerifier | None = None,
) -> CommentsContext:
    """Wire the comments components from settings.

    Args:
        settings: Application settings.
        redis: Connected Redis client for shared rate limiting, if any.
        storage: Storage manager override.
        captcha: CAPTCHA verifier override.

    Returns:
        A CommentsContext; storage is not initialized yet.
    """
    storage = storage or StorageManager.from_settings(settings)
    rate_limiter = RateLimiter(
        window_seconds=settings.comments_rate_limit_window_seconds,
        max_submissions=settings.comments_rate_limit_max_submissions,
        store=RedisRateLimitStore(redis) if redis is not None else None,
        fallback=InMemoryRateLimitStore(),
    )
    captcha = captcha or TurnstileVerifier.from_settings(settings)
    authenticator = AdminAuthenticator.from_settings(settings)

    if not authenticator.configured:
        logger.warning("admin_auth_not_configured")

    service = CommentService(
        storage=storage,
        rate_limiter=rate_limiter,
        captcha=captcha,
        authenticator=authenticator,
        allowed_origins=get_allowed_origins(settings),
    )

    logger.info(
        "comments_context_built",
        backend=settings.comments_storage_backend,
        rate_limit_store=rate_limiter.active_store.name,
        captcha_enabled=captcha.enabled,
    )

    return CommentsContext(
        settings=settings,
        storage=storage,
        rate_limiter=rate_limiter,
        captcha=captcha,
        authenticator=authenticator,
        service=service,
    )
