"""
Redis connection shared by OTP state and token revocation.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from welfare_admin.app.core.config import settings


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    FastAPI dependency for the shared client.

    Helpers call it at use time rather than binding the client on import,
    so a replaced module attribute is always honoured.
    """
    return redis_client


async def ping_redis() -> bool:
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError):
        return False
