"""Tests for Supabase token handling and user provisioning."""

from datetime import timedelta
from typing import Any

import jwt
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from otagon import auth
from otagon.dependencies import get_or_create_user
from otagon.models import User, UserUsage
from otagon.models.user import TIER_FREE


class TestTokens:

    @pytest.mark.unit
    def test_round_trip(self) -> None:
        token = auth.create_access_token("supabase-uid", email="a@example.com")

        payload = auth.decode_access_token(token)

        assert payload["sub"] == "supabase-uid"
        assert payload["email"] == "a@example.com"
        assert payload["aud"] == "authenticated"

    @pytest.mark.unit
    def test_expired(self) -> None:
        token = auth.create_access_token("supabase-uid", expires_delta=timedelta(seconds=-5))

        assert auth.decode_access_token(token) is None

    @pytest.mark.unit
    def test_wrong_secret(self) -> None:
        token = jwt.encode(
            {"sub": "x", "aud": "authenticated", "exp": 9999999999},
            "another-secret-with-enough-length-for-hs256",
            algorithm="HS256",
        )

        assert auth.decode_access_token(token) is None

    @pytest.mark.unit
    def test_wrong_audience(self) -> None:
        token = auth.create_access_token("supabase-uid", extra={"aud": "anon"})

        assert auth.decode_access_token(token) is None

    @pytest.mark.unit
    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc.def", "abc.def"),
        ("Bearer ", None),
        ("Basic abc", None),
        (None, None),
    ])
    def test_token_from_header(self, header: Any, expected: Any) -> None:
        assert auth.token_from_header(header) == expected


class TestUserProvisioning:

    @pytest.mark.unit
    async def test_first_request_creates_free_user(self, db: AsyncSession) -> None:
        user = await get_or_create_user(db, {"sub": "new-uid", "email": "new@example.com"})

        assert user.tier == TIER_FREE
        assert user.email == "new@example.com"
        usage = (await db.execute(select(UserUsage).where(UserUsage.user_id == user.id))).scalar_one()
        assert usage.text_limit == 55

    @pytest.mark.unit
    async def test_existing_user_returned(self, db: AsyncSession) -> None:
        first = await get_or_create_user(db, {"sub": "same-uid"})
        second = await get_or_create_user(db, {"sub": "same-uid"})

        assert first.id == second.id
        count = len((await db.execute(select(User).where(User.auth_id == "same-uid"))).scalars().all())
        assert count == 1
