"""Shared pytest fixtures for the Otagon API tests."""

import asyncio
import os
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterator

import pytest
from dotenv import load_dotenv

# Load environment variables, then pin the ones the tests depend on
load_dotenv()
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = ""
os.environ["SUPABASE_JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"
os.environ["LOG_JSON"] = "false"
os.environ["AI_RETRY_BASE_DELAY"] = "0"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402

from otagon import auth  # noqa: E402
from otagon.database import Base, get_db  # noqa: E402
from otagon.models import User, UserUsage  # noqa: E402
from otagon.models.user import TIER_FREE  # noqa: E402
from otagon.services.cache import MemoryCache  # noqa: E402
from otagon.services.conversation_store import ConversationStore  # noqa: E402
from otagon.services.gemini_client import AIResponse  # noqa: E402


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
async def engine() -> AsyncIterator[Any]:
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: Any) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path: Any) -> AsyncIterator[async_sessionmaker]:
    """File-backed database for tests that need two independent sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def make_user(db: AsyncSession) -> Callable:
    """Factory creating a user (and usage row) in the test database."""

    async def _make_user(
        auth_id: str = "auth-user-1",
        tier: str = TIER_FREE,
        **fields: Any
    ) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            auth_id=auth_id,
            email=f"{auth_id}@example.com",
            tier=tier,
            is_active=True,
            is_on_trial=fields.pop("is_on_trial", False),
            has_used_trial=fields.pop("has_used_trial", False),
            created_at=now,
            updated_at=now,
            **fields
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
async def user(make_user: Callable) -> User:
    return await make_user()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache(default_ttl=60)


@pytest.fixture
def store(db: AsyncSession, user: User, cache: MemoryCache) -> ConversationStore:
    return ConversationStore(db, user, cache)


@pytest.fixture
def usage_row(db: AsyncSession) -> Callable:
    """Factory inserting a usage row with explicit counters."""

    async def _usage_row(user: User, **fields: Any) -> UserUsage:
        usage = UserUsage(
            user_id=user.id,
            text_count=fields.pop("text_count", 0),
            image_count=fields.pop("image_count", 0),
            text_limit=fields.pop("text_limit", 55),
            image_limit=fields.pop("image_limit", 25),
            total_requests=fields.pop("total_requests", 0),
            **fields
        )
        db.add(usage)
        await db.commit()
        return usage

    return _usage_row


@pytest.fixture
def mock_gemini(mocker: Any) -> Any:
    """GeminiClient stand-in with async ``chat`` and ``generate_insights``."""
    client = mocker.Mock()
    client.chat = mocker.AsyncMock(return_value=AIResponse(text="Hello, player!", model="gemini-test"))
    client.generate_insights = mocker.AsyncMock(return_value={})
    return client


# ============================================================================
# HTTP app fixtures
# ============================================================================

@pytest.fixture
def api_session_factory(tmp_path: Any) -> Iterator[async_sessionmaker]:
    """File-backed database for TestClient requests.

    NullPool opens connections inside the app's own event loop.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)

    async def _create() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def client(api_session_factory: async_sessionmaker, mock_gemini: Any) -> Iterator[TestClient]:
    from otagon.api.deps import get_cache, get_gemini_client
    from otagon.main import app

    test_cache = MemoryCache(default_ttl=60)

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with api_session_factory() as session:
            yield session

    async def _get_cache() -> MemoryCache:
        return test_cache

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cache] = _get_cache
    app.dependency_overrides[get_gemini_client] = lambda: mock_gemini
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable:
    def _auth_headers(auth_id: str = "supabase-user-1", email: str = "player@example.com") -> dict:
        token = auth.create_access_token(auth_id, email=email)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
