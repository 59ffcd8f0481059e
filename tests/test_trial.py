"""Tests for the Pro trial lifecycle and tier changes."""

from datetime import timedelta
from typing import Callable

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from otagon.exceptions import TrialError
from otagon.models import User, UserUsage
from otagon.models.user import TIER_FREE, TIER_PRO, TIER_VANGUARD
from otagon.timeutils import ensure_utc
from otagon.trial import change_tier, check_trial_status, start_free_trial

from conftest import utc


async def _usage(db: AsyncSession, user: User) -> UserUsage:
    return (await db.execute(select(UserUsage).where(UserUsage.user_id == user.id))).scalar_one()


class TestStartTrial:

    @pytest.mark.unit
    async def test_start_trial(self, db: AsyncSession, user: User) -> None:
        now = utc(2025, 10, 1, 12)

        status = await start_free_trial(db, user, now=now)

        assert status.tier == TIER_PRO
        assert status.is_on_trial is True
        assert status.expires_at == now + timedelta(days=14)
        assert user.has_used_trial is True
        assert ensure_utc(user.trial_started_at) == now

        usage = await _usage(db, user)
        assert usage.text_limit == 1583
        assert usage.image_limit == 328

    @pytest.mark.unit
    async def test_only_one_trial(self, db: AsyncSession, make_user: Callable) -> None:
        user = await make_user(auth_id="used-trial", has_used_trial=True)

        with pytest.raises(TrialError):
            await start_free_trial(db, user)

    @pytest.mark.unit
    async def test_paid_user_cannot_start_trial(self, db: AsyncSession, make_user: Callable) -> None:
        user = await make_user(auth_id="vanguard", tier=TIER_VANGUARD)

        with pytest.raises(TrialError):
            await start_free_trial(db, user)


class TestCheckTrialStatus:

    @pytest.mark.unit
    async def test_expired_trial_downgrades(self, db: AsyncSession, user: User) -> None:
        await start_free_trial(db, user, now=utc(2025, 10, 1))

        status = await check_trial_status(db, user, now=utc(2025, 10, 15, 0, 1))

        assert status.expired is True
        assert status.downgraded is True
        assert status.tier == TIER_FREE
        assert user.tier == TIER_FREE
        assert user.is_on_trial is False
        assert user.has_used_trial is True

        usage = await _usage(db, user)
        assert usage.text_limit == 55
        assert usage.image_limit == 25

    @pytest.mark.unit
    async def test_warning_near_expiry(self, db: AsyncSession, user: User) -> None:
        await start_free_trial(db, user, now=utc(2025, 10, 1))

        status = await check_trial_status(db, user, now=utc(2025, 10, 14, 19))

        assert status.expired is False
        assert status.tier == TIER_PRO
        assert status.warning is not None
        assert "5 hours" in status.warning
        assert status.hours_remaining == 5.0

    @pytest.mark.unit
    async def test_no_warning_early_in_trial(self, db: AsyncSession, user: User) -> None:
        await start_free_trial(db, user, now=utc(2025, 10, 1))

        status = await check_trial_status(db, user, now=utc(2025, 10, 3))

        assert status.warning is None
        assert status.is_on_trial is True

    @pytest.mark.unit
    async def test_free_user_untouched(self, db: AsyncSession, user: User) -> None:
        status = await check_trial_status(db, user, now=utc(2025, 10, 3))

        assert status.tier == TIER_FREE
        assert status.is_on_trial is False
        assert status.downgraded is False


class TestChangeTier:

    @pytest.mark.unit
    async def test_upgrade_to_vanguard(self, db: AsyncSession, user: User) -> None:
        user = await change_tier(db, user, TIER_VANGUARD)

        assert user.tier == TIER_VANGUARD
        usage = await _usage(db, user)
        assert usage.text_limit == 1583

    @pytest.mark.unit
    async def test_upgrade_ends_trial(self, db: AsyncSession, user: User) -> None:
        await start_free_trial(db, user, now=utc(2025, 10, 1))

        user = await change_tier(db, user, TIER_PRO, now=utc(2025, 10, 5))

        assert user.is_on_trial is False
        status = await check_trial_status(db, user, now=utc(2025, 11, 1))
        assert status.tier == TIER_PRO
        assert status.downgraded is False

    @pytest.mark.unit
    async def test_unknown_tier(self, db: AsyncSession, user: User) -> None:
        with pytest.raises(ValueError):
            await change_tier(db, user, "platinum")
