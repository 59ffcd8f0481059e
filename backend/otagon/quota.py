"""
Quota Management
================
Monthly query quota checks per user.

Quotas reset when the calendar month changes. The rollover and the check run
in one transaction with the usage row locked, and consumption is a single
conditional UPDATE so two requests cannot both take the last query.
"""

from datetime import datetime
from typing import NamedTuple, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import QuotaExceededError
from .models.user import User
from .models.usage import (
    UserUsage,
    QUERY_TEXT,
    QUERY_IMAGE,
    QUERY_TYPES,
    QUOTA_MESSAGE,
    limits_for_tier,
)
from .timeutils import ensure_utc, is_different_month, utcnow


class QuotaDecision(NamedTuple):
    """Outcome of a quota check."""

    allowed: bool
    used: int
    limit: int
    reason: Optional[str] = None


def _validate_query_type(query_type: str) -> None:
    if query_type not in QUERY_TYPES:
        raise ValueError(f"Unknown query type: {query_type!r}")


def apply_tier_limits(usage: UserUsage, tier: str) -> None:
    """Set the usage row's limits to those of ``tier``."""
    limits = limits_for_tier(tier)
    usage.text_limit = limits[QUERY_TEXT]
    usage.image_limit = limits[QUERY_IMAGE]


async def get_or_create_usage(
    db: AsyncSession,
    user: User,
    lock: bool = False,
    now: Optional[datetime] = None
) -> UserUsage:
    """
    Load the user's usage row, creating it with tier limits if missing.

    Args:
        db: Database session
        user: Owner of the usage row
        lock: Select the row FOR UPDATE (Postgres) for a read-modify-write
        now: Timestamp used as ``last_reset`` for a new row
    """
    stmt = (
        select(UserUsage)
        .where(UserUsage.user_id == user.id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()

    result = await db.execute(stmt)
    usage = result.scalar_one_or_none()

    if usage is None:
        now = now or utcnow()
        usage = UserUsage(
            user_id=user.id,
            text_count=0,
            image_count=0,
            total_requests=0,
            last_reset=now,
            created_at=now,
            updated_at=now
        )
        apply_tier_limits(usage, user.tier)
        db.add(usage)
        await db.flush()

    return usage


async def _rollover_if_needed(db: AsyncSession, usage: UserUsage, now: datetime) -> bool:
    """Zero the counters when ``last_reset`` is in another calendar month."""
    if not is_different_month(usage.last_reset, now):
        return False

    logger.info(
        "Monthly quota reset user_id={} last_reset={} text={} image={}",
        usage.user_id, ensure_utc(usage.last_reset), usage.text_count, usage.image_count
    )
    usage.text_count = 0
    usage.image_count = 0
    usage.last_reset = now
    usage.updated_at = now
    await db.flush()
    return True


async def can_send_query(
    db: AsyncSession,
    user: User,
    query_type: str = QUERY_TEXT,
    count: int = 1,
    now: Optional[datetime] = None
) -> QuotaDecision:
    """
    Check if the user has quota left for ``count`` queries of ``query_type``.

    A stale window is reset and persisted before evaluating.

    Returns:
        QuotaDecision(allowed, used, limit, reason)
    """
    _validate_query_type(query_type)
    now = ensure_utc(now) or utcnow()

    usage = await get_or_create_usage(db, user, lock=True, now=now)
    await _rollover_if_needed(db, usage, now)

    used = usage.count_for(query_type)
    limit = usage.limit_for(query_type)
    await db.commit()

    if used + count > limit:
        reason = QUOTA_MESSAGE.format(limit=limit, query_type=query_type)
        logger.info(
            "Quota denied user_id={} type={} used={} limit={}",
            user.id, query_type, used, limit
        )
        return QuotaDecision(allowed=False, used=used, limit=limit, reason=reason)

    return QuotaDecision(allowed=True, used=used, limit=limit)


async def record_query(
    db: AsyncSession,
    user: User,
    query_type: str = QUERY_TEXT,
    count: int = 1,
    now: Optional[datetime] = None
) -> QuotaDecision:
    """
    Consume ``count`` queries of ``query_type``.

    Raises:
        QuotaExceededError if the quota cannot cover ``count`` queries
    """
    _validate_query_type(query_type)
    now = ensure_utc(now) or utcnow()

    usage = await get_or_create_usage(db, user, lock=True, now=now)
    await _rollover_if_needed(db, usage, now)

    if query_type == QUERY_TEXT:
        counter, limit_column = UserUsage.text_count, UserUsage.text_limit
    else:
        counter, limit_column = UserUsage.image_count, UserUsage.image_limit

    stmt = (
        update(UserUsage)
        .where(UserUsage.user_id == user.id, counter + count <= limit_column)
        .values({
            counter.key: counter + count,
            "total_requests": UserUsage.total_requests + count,
            "updated_at": now,
        })
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    # Keep a rollover even when the increment is refused
    await db.commit()
    await db.refresh(usage)

    used = usage.count_for(query_type)
    limit = usage.limit_for(query_type)

    if result.rowcount == 0:
        reason = QUOTA_MESSAGE.format(limit=limit, query_type=query_type)
        logger.info(
            "Quota exhausted user_id={} type={} used={} limit={}",
            user.id, query_type, used, limit
        )
        raise QuotaExceededError(query_type, used, limit, reason)

    return QuotaDecision(allowed=True, used=used, limit=limit)


async def get_usage_info(
    db: AsyncSession,
    user: User,
    now: Optional[datetime] = None
) -> dict:
    """
    Get current usage info for display to user.

    Returns:
        Dict with tier, per-type used/limit/remaining, total requests and last reset
    """
    now = ensure_utc(now) or utcnow()
    usage = await get_or_create_usage(db, user, lock=True, now=now)
    await _rollover_if_needed(db, usage, now)
    await db.commit()

    info = {
        "tier": user.tier,
        "total_requests": usage.total_requests,
        "last_reset": ensure_utc(usage.last_reset),
    }
    for query_type in QUERY_TYPES:
        used = usage.count_for(query_type)
        limit = usage.limit_for(query_type)
        info[query_type] = {
            "used": used,
            "limit": limit,
            "remaining": max(0, limit - used),
        }
    return info
