"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from welfare_admin.app.core.exceptions import AuthenticationError, AuthorizationError, TokenRevokedError
from welfare_admin.app.core.jwt import decode_access_token
from welfare_admin.app.core.token_revocation import is_token_revoked
from welfare_admin.app.db.session import get_db
from welfare_admin.app.models.user import User

# HTTP Bearer security scheme; missing header is reported by us as 401
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Validates JWT signature, expiry and that it is an access token
    2. Checks the token was not revoked, alone (logout) or with every
       session of its user (phone change)
    3. Verifies user still exists and is active

    Returns:
        Decoded token payload (sub, user_id, role) plus the raw token

    Raises:
        AuthenticationError (401) / AuthorizationError (403)
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")
    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    if await is_token_revoked(payload):
        raise TokenRevokedError()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthorizationError("User account is inactive")

    # Role from the DB wins over a stale claim
    return {**payload, "role": user.role.value, "token": token}


async def get_current_user_model(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> User:
    """The authenticated User row, for handlers that need profile or scope fields."""
    result = await db.execute(select(User).where(User.id == current_user["user_id"]))
    return result.scalar_one()
