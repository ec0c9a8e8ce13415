"""
Shared Redis connection.

Redis backs the short-lived locks (settlement generation, pricing submit
guard) and the realtime pub/sub channels for custom order requests. Nothing
durable lives here.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from backoffice.app.core.config import settings

logger = logging.getLogger("backoffice.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency; overridden in tests."""
    return redis_client


async def ping_redis() -> bool:
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis() -> None:
    await redis_client.aclose()
