"""Redis client used by the event stream sink."""

import redis.asyncio as redis
from redis.asyncio import Redis

from pokerclub.config import get_settings

settings = get_settings()

redis_client: Redis | None = None


async def init_redis() -> Redis | None:
    """Connect to Redis when REDIS_URL is configured.

    Returns None when Redis is not configured; the event bus then delivers
    to in-process subscribers only.
    """
    global redis_client

    if not settings.redis_url:
        return None

    redis_client = redis.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        encoding="utf-8",
        decode_responses=True,
    )
    await redis_client.ping()
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
