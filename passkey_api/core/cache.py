"""
Redis Client Module

Provides the shared Redis client used for rate-limit counters.
"""

import redis.asyncio as redis

from passkey_api.config import get_settings

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """
    Get the shared Redis client instance.

    Creates the client on first call and reuses it afterwards.
    Connections are opened lazily, so this never blocks on Redis itself.

    Returns:
        Async Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on application shutdown."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
