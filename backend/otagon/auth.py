"""
Authentication Module
=====================
Supabase JWT verification.

The web app signs in with Supabase and sends the Supabase access token as a
Bearer token. The token is verified with the project's JWT secret; ``sub`` is
the Supabase user id.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict

import jwt
from loguru import logger

from .config import settings


def create_access_token(
    auth_id: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    extra: Optional[Dict] = None
) -> str:
    """
    Create a Supabase-compatible access token.

    Used for local development and tests; production tokens are issued by
    Supabase.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "sub": auth_id,
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "iat": now,
        "exp": expire,
    }
    if email:
        to_encode["email"] = email
    if extra:
        to_encode.update(extra)

    return jwt.encode(to_encode, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """
    Verify and decode a Supabase access token.

    Returns:
        Decoded payload dict if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options={"require": ["exp", "sub"]}
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Access token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("Invalid access token: {}", e)
        return None

    return payload


def token_from_header(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None
