"""
FastAPI Dependencies
====================
Reusable dependencies for authentication and database access.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import auth
from .database import get_db
from .models.user import User, TIER_FREE
from .quota import get_or_create_usage
from .timeutils import utcnow


async def get_or_create_user(db: AsyncSession, payload: dict) -> Optional[User]:
    """
    Load the user for a verified token, provisioning a free account on first
    sight of a Supabase user id.
    """
    auth_id = payload.get("sub")
    if not auth_id:
        return None

    stmt = select(User).where(User.auth_id == auth_id)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is not None:
        return user if user.is_active else None

    now = utcnow()
    metadata = payload.get("user_metadata") or {}
    user = User(
        auth_id=auth_id,
        email=payload.get("email"),
        display_name=metadata.get("full_name") or metadata.get("name"),
        tier=TIER_FREE,
        is_active=True,
        is_on_trial=False,
        has_used_trial=False,
        created_at=now,
        last_login=now,
        updated_at=now
    )
    db.add(user)
    try:
        await db.flush()
        await get_or_create_usage(db, user, now=now)
        await db.commit()
    except IntegrityError:
        # Another request provisioned the same auth id first
        await db.rollback()
        user = (await db.execute(stmt)).scalar_one_or_none()
        return user if user is not None and user.is_active else None

    logger.info("Provisioned user id={} auth_id={}", user.id, auth_id)
    return user


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    Get current user if authenticated, None otherwise.
    """
    token = auth.token_from_header(request.headers.get("Authorization"))
    if not token:
        token = request.cookies.get("access_token")
    if not token:
        return None

    payload = auth.decode_access_token(token)
    if not payload:
        return None

    return await get_or_create_user(db, payload)


async def get_current_user_required(
    user: Optional[User] = Depends(get_current_user_optional)
) -> User:
    """
    Get current user, raise 401 if not authenticated.
    """
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Please log in.",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user
