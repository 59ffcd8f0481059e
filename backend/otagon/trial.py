"""
Trial & Tier Management
=======================
Pro trial lifecycle and tier changes.

The trial check runs once per session start: an expired Pro trial is
downgraded to free (tier and quota limits) and the user record reloaded; a
trial ending within ``TRIAL_WARNING_HOURS`` produces a warning.
"""

import math
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .exceptions import TrialError
from .models.user import User, TIER_FREE, TIER_PRO, TIERS
from .quota import apply_tier_limits, get_or_create_usage
from .timeutils import ensure_utc, utcnow


class TrialStatus(NamedTuple):
    """Result of a session-start trial check."""

    tier: str
    is_on_trial: bool
    expired: bool = False
    downgraded: bool = False
    warning: Optional[str] = None
    expires_at: Optional[datetime] = None
    hours_remaining: Optional[float] = None


async def _set_tier(db: AsyncSession, user: User, tier: str, now: datetime) -> None:
    user.tier = tier
    user.updated_at = now
    usage = await get_or_create_usage(db, user, lock=True, now=now)
    apply_tier_limits(usage, tier)
    await db.flush()


async def check_trial_status(
    db: AsyncSession,
    user: User,
    now: Optional[datetime] = None
) -> TrialStatus:
    """
    Evaluate the user's trial at session start.

    Returns:
        TrialStatus describing the (possibly downgraded) tier and any warning
    """
    now = ensure_utc(now) or utcnow()
    expires_at = ensure_utc(user.trial_expires_at)

    if user.tier != TIER_PRO or not user.is_on_trial or expires_at is None:
        return TrialStatus(
            tier=user.tier,
            is_on_trial=bool(user.is_on_trial),
            expires_at=expires_at
        )

    if expires_at <= now:
        logger.info("Pro trial expired user_id={} expires_at={}", user.id, expires_at)
        await _set_tier(db, user, TIER_FREE, now)
        user.is_on_trial = False
        await db.commit()
        await db.refresh(user)
        return TrialStatus(
            tier=user.tier,
            is_on_trial=False,
            expired=True,
            downgraded=True,
            expires_at=expires_at
        )

    hours_remaining = (expires_at - now).total_seconds() / 3600
    warning = None
    if hours_remaining <= settings.TRIAL_WARNING_HOURS:
        hours = max(1, math.ceil(hours_remaining))
        warning = (
            f"Your Pro trial ends in {hours} hour{'s' if hours != 1 else ''}. "
            "Upgrade to keep Pro features."
        )

    return TrialStatus(
        tier=user.tier,
        is_on_trial=True,
        warning=warning,
        expires_at=expires_at,
        hours_remaining=round(hours_remaining, 2)
    )


async def start_free_trial(
    db: AsyncSession,
    user: User,
    now: Optional[datetime] = None
) -> TrialStatus:
    """
    Start the one-time Pro trial for a free user.

    Raises:
        TrialError if the user already used a trial or is not on the free tier
    """
    if user.has_used_trial:
        raise TrialError("You have already used your free trial.")
    if user.tier != TIER_FREE:
        raise TrialError("Trials are only available on the free tier.")

    now = ensure_utc(now) or utcnow()
    expires_at = now + timedelta(days=settings.TRIAL_DURATION_DAYS)

    await _set_tier(db, user, TIER_PRO, now)
    user.is_on_trial = True
    user.has_used_trial = True
    user.trial_started_at = now
    user.trial_expires_at = expires_at
    await db.commit()
    await db.refresh(user)

    logger.info("Pro trial started user_id={} expires_at={}", user.id, expires_at)
    return TrialStatus(
        tier=user.tier,
        is_on_trial=True,
        expires_at=expires_at,
        hours_remaining=round((expires_at - now).total_seconds() / 3600, 2)
    )


async def change_tier(
    db: AsyncSession,
    user: User,
    tier: str,
    now: Optional[datetime] = None
) -> User:
    """
    Move the user to ``tier`` and update quota limits.

    A paid change ends any running trial.
    """
    if tier not in TIERS:
        raise ValueError(f"Unknown tier: {tier!r}")

    now = ensure_utc(now) or utcnow()
    previous = user.tier
    await _set_tier(db, user, tier, now)
    user.is_on_trial = False
    await db.commit()
    await db.refresh(user)

    logger.info("Tier changed user_id={} from={} to={}", user.id, previous, tier)
    return user
