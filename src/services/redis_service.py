"""Redis client lifecycle for the auth-code store."""

from typing import Optional

import redis.asyncio as redis
import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis client
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis client.

    Connect and command timeouts are bounded so an outage surfaces as a
    failure instead of a hung request.

    Returns:
        Redis client or None if the connection fails
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )

    try:
        await client.ping()
    except Exception as e:
        logger.warning("redis_connection_failed", error=str(e))
        # Release the pool so a failed attempt leaves no sockets behind
        await client.aclose()
        return None

    _redis_client = client
    logger.info("redis_connected", url=settings.redis_url.split("@")[-1])
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_connection_closed")


async def health_check() -> bool:
    """Check Redis connectivity.

    Returns:
        True if Redis answers PING, False otherwise
    """
    client = await get_redis()
    if client is None:
        return False
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))
        return False
