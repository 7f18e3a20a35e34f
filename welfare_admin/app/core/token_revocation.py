"""
Token Revocation using Redis.

Two mechanisms:
- single tokens (logout, refresh rotation) are blacklisted by `jti` until
  their own `exp`, so the key disappears when the token would anyway.
  Refresh tokens are claimed with SET NX, so each one is used once;
- a per-user cutoff ends every session issued before it (phone change).

Redis errors are logged and treated as "not revoked" so an outage does not
lock every admin out.
"""

import time
import logging
from typing import Any, Dict
from redis.exceptions import RedisError
from welfare_admin.app.core.redis_client import get_redis
from welfare_admin.app.core.config import settings

logger = logging.getLogger(__name__)

REVOKED_JTI_PREFIX = "auth:revoked:"
SESSIONS_CUTOFF_PREFIX = "auth:revoked-before:"


def _seconds_left(claims: Dict[str, Any]) -> int:
    return max(int(claims.get("exp", 0) - time.time()), 1)


def _longest_session() -> int:
    return max(settings.access_token_expire_minutes * 60, settings.refresh_token_expire_days * 86400)


async def revoke_token(claims: Dict[str, Any]) -> bool:
    """Blacklist one decoded token. Returns False when it could not be recorded."""
    jti = claims.get("jti")
    if not jti:
        return False
    try:
        client = await get_redis()
        await client.set(f"{REVOKED_JTI_PREFIX}{jti}", str(claims.get("user_id", "")), ex=_seconds_left(claims))
        return True
    except RedisError:
        logger.exception("Could not revoke token for user %s", claims.get("user_id"))
        return False


async def claim_token(claims: Dict[str, Any]) -> bool:
    """
    Revoke a single-use token atomically. Returns True only for the caller
    that recorded the revocation, so two refreshes with one token cannot both
    succeed.
    """
    jti = claims.get("jti")
    if not jti:
        return False
    try:
        client = await get_redis()
        claimed = await client.set(
            f"{REVOKED_JTI_PREFIX}{jti}", str(claims.get("user_id", "")), ex=_seconds_left(claims), nx=True
        )
    except RedisError:
        logger.exception("Could not claim token for user %s; allowing request", claims.get("user_id"))
        return True
    return bool(claimed)


async def revoke_user_sessions(user_id: int) -> bool:
    """Invalidate every token issued to `user_id` before now."""
    try:
        client = await get_redis()
        await client.set(f"{SESSIONS_CUTOFF_PREFIX}{user_id}", str(int(time.time())), ex=_longest_session())
        return True
    except RedisError:
        logger.exception("Could not revoke sessions for user %s", user_id)
        return False


async def is_token_revoked(claims: Dict[str, Any]) -> bool:
    """
    True if the token was blacklisted or predates its user's session cutoff.

    Tokens minted in the same second as the cutoff stay valid, which is what
    lets a phone change hand back a fresh pair.
    """
    try:
        client = await get_redis()
        jti = claims.get("jti")
        if jti and await client.exists(f"{REVOKED_JTI_PREFIX}{jti}"):
            return True
        cutoff = await client.get(f"{SESSIONS_CUTOFF_PREFIX}{claims.get('user_id')}")
        return cutoff is not None and int(claims.get("iat", 0)) < int(cutoff)
    except RedisError:
        logger.exception("Token revocation check failed; allowing request")
        return False
