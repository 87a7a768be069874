"""Redis connection management.

Redis backs the shared submission rate-limit counters. It is optional: when
no URL is configured or the server cannot be reached at startup, the
application runs with in-process counters instead.
"""

import redis.asyncio as redis

from foamsanat.config.settings import Settings
from foamsanat.core.logging import get_logger


logger = get_logger(__name__)


async def init_redis(settings: Settings) -> redis.Redis | None:
    """Create the Redis client and check the connection.

    Returns:
        The connected client, or None when Redis is not configured or unreachable.
    """
    if not settings.redis_url:
        logger.info("redis_not_configured")
        return None

    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await client.ping()
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        return None

    logger.info("redis_connected")
    return client


async def shutdown_redis(client: redis.Redis | None) -> None:
    """Close Redis connection."""
    if client is not None:
        await client.aclose()
        logger.info("redis_disconnected")


def rate_limit_key(client_id: str) -> str:
    """Redis key holding the submission counter for one client."""
    return f"comments:rate:{client_id}"
