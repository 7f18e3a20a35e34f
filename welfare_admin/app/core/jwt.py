"""
JWT token utilities for authentication.

Access tokens authorise API calls; refresh tokens (`type: refresh`) only mint new pairs.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from welfare_admin.app.core.config import settings


def _encode(data: Dict[str, Any], lifetime: timedelta, kind: str) -> str:
    issued = datetime.utcnow()
    claims = {**data, "iat": issued, "exp": issued + lifetime, "type": kind, "jti": uuid.uuid4().hex}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (sub, user_id, role)
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT carrying iat, exp, jti and `type: access`
    """
    return _encode(data, expires_delta or timedelta(minutes=settings.access_token_expire_minutes), "access")


def create_refresh_token(data: Dict[str, Any]) -> str:
    return _encode(data, timedelta(days=settings.refresh_token_expire_days), "refresh")

def create_token_pair(user) -> Dict[str, Any]:
    """Access + refresh tokens for a User row."""
    claims = {"sub": user.phone, "user_id": user.id, "role": user.role.value}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
        "token_type": "bearer",
        "expires_in": settings.access_token_expire_minutes * 60,
    }


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload if valid (includes: sub, user_id, role, type, exp), None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
