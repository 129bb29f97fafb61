"""Redis connection configuration."""

from typing import Optional

import redis.asyncio as redis

from hlspipe.core.config import get_settings

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(get_settings().REDIS_URL, decode_responses=True)
    return _redis_client
