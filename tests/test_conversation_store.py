"""Tests for the conversation store."""

from typing import Any, Callable

import pytest
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from otagon.exceptions import (
    ConversationConflictError,
    ConversationLimitError,
    ConversationNotFoundError,
)
from otagon.models import (
    Conversation,
    GENERAL_HUB_ID,
    GENERAL_HUB_TITLE,
    LEGACY_HUB_TITLE,
    User,
)
from otagon.models.user import TIER_PRO
from otagon.services.cache import MemoryCache
from otagon.services.conversation_store import ConversationStore


class TestCreateAndRead:

    @pytest.mark.unit
    async def test_create_and_get(self, store: ConversationStore) -> None:
        conversation = await store.create(title="Speedrun notes")

        loaded = await store.get(conversation.id)

        assert loaded.title == "Speedrun notes"
        assert loaded.version == 1
        assert loaded.messages == []

    @pytest.mark.unit
    async def test_get_missing(self, store: ConversationStore) -> None:
        with pytest.raises(ConversationNotFoundError):
            await store.get("does-not-exist")

    @pytest.mark.unit
    async def test_other_users_conversations_hidden(
        self, db: AsyncSession, store: ConversationStore, make_user: Callable, cache: MemoryCache
    ) -> None:
        other = await make_user(auth_id="someone-else")
        theirs = await ConversationStore(db, other, cache).create(title="Private")

        with pytest.raises(ConversationNotFoundError):
            await store.get(theirs.id)

    @pytest.mark.unit
    async def test_owner_relationships_not_lazy_loaded(self, store: ConversationStore, user: User) -> None:
        conversation = await store.create(conversation_id="a", title="A")
        loaded = await store.get(conversation.id)

        with pytest.raises(InvalidRequestError):
            loaded.user
        with pytest.raises(InvalidRequestError):
            user.conversations

        await store.delete("a")
        assert await store.find("a") is None

    @pytest.mark.unit
    async def test_duplicate_id_rejected(self, store: ConversationStore) -> None:
        await store.create(conversation_id="elden-ring", title="Elden Ring")

        with pytest.raises(ConversationConflictError):
            await store.create(conversation_id="elden-ring", title="Elden Ring")


class TestGeneralHub:

    @pytest.mark.unit
    async def test_created_once(self, store: ConversationStore) -> None:
        first = await store.ensure_general_hub()
        second = await store.ensure_general_hub()

        assert first.id == GENERAL_HUB_ID
        assert first.title == GENERAL_HUB_TITLE
        assert second is first
        assert await store.count_conversations() == 1

    @pytest.mark.unit
    async def test_legacy_title_renamed(self, db: AsyncSession, store: ConversationStore, user: User) -> None:
        await store.create(conversation_id=GENERAL_HUB_ID, title=LEGACY_HUB_TITLE)

        hub = await store.ensure_general_hub()

        assert hub.title == GENERAL_HUB_TITLE
        assert hub.version == 2

    @pytest.mark.unit
    async def test_hub_cannot_be_deleted(self, store: ConversationStore) -> None:
        await store.ensure_general_hub()

        with pytest.raises(ConversationLimitError):
            await store.delete(GENERAL_HUB_ID)


class TestListing:

    @pytest.mark.unit
    async def test_order(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        await store.create(conversation_id="b", title="B")
        await store.create(conversation_id="c", title="C")
        await store.ensure_general_hub()
        await store.update("a", {"is_pinned": True})
        await store.add_message("b", "user", "newest activity")

        ids = [c["id"] for c in await store.list_snapshots()]

        assert ids == [GENERAL_HUB_ID, "a", "b", "c"]

    @pytest.mark.unit
    async def test_listing_cached_and_invalidated(self, store: ConversationStore, cache: MemoryCache) -> None:
        await store.create(conversation_id="a", title="A")
        first = await store.list_snapshots()
        assert await cache.cache_get(store._listing_key()) == first

        await store.create(conversation_id="b", title="B")

        assert await cache.cache_get(store._listing_key()) is None
        assert {c["id"] for c in await store.list_snapshots()} == {"a", "b"}

    @pytest.mark.unit
    async def test_snapshot_invalidated_on_write(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        before = await store.get_snapshot("a")

        await store.add_message("a", "user", "hi")
        after = await store.get_snapshot("a")

        assert before["message_count"] == 0
        assert after["message_count"] == 1
        assert after["messages"][0]["content"] == "hi"
        assert after["version"] == before["version"] + 1


class TestUpdates:

    @pytest.mark.unit
    async def test_update_bumps_version(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")

        updated = await store.update("a", {"title": "Renamed", "progress": 40}, expected_version=1)

        assert updated.title == "Renamed"
        assert updated.progress == 40
        assert updated.version == 2

    @pytest.mark.unit
    async def test_stale_version_rejected(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        await store.update("a", {"title": "First"})

        with pytest.raises(ConversationConflictError):
            await store.update("a", {"title": "Second"}, expected_version=1)

        assert (await store.get("a")).title == "First"

    @pytest.mark.unit
    async def test_unknown_field(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")

        with pytest.raises(ValueError):
            await store.update("a", {"user_id": 99})

    @pytest.mark.unit
    async def test_concurrent_writers_conflict(self, file_session_factory: async_sessionmaker) -> None:
        """Two sessions editing the same conversation: the later flush loses."""
        async with file_session_factory() as setup:
            user = User(auth_id="racer", tier="free", is_active=True)
            setup.add(user)
            await setup.commit()
            await ConversationStore(setup, user).create(conversation_id="shared", title="Shared")

        async with file_session_factory() as session_a, file_session_factory() as session_b:
            store_a = ConversationStore(session_a, user)
            store_b = ConversationStore(session_b, user)
            seen_by_a = await store_a.get("shared")
            seen_by_b = await store_b.get("shared")
            assert seen_by_a.version == seen_by_b.version == 1

            await store_b.update("shared", {"title": "From B"})
            with pytest.raises(ConversationConflictError):
                await store_a.update("shared", {"title": "From A"})

        async with file_session_factory() as check:
            shared = await ConversationStore(check, user).get("shared")
            assert shared.title == "From B"
            assert shared.version == 2

    @pytest.mark.unit
    async def test_conflict_after_rollback_keeps_store_usable(
        self, store: ConversationStore, mocker: Any
    ) -> None:
        """A failed commit expires the session's objects; cache keys and logging must not need them."""
        await store.create(conversation_id="a", title="A")
        await store.get_snapshot("a")
        mocker.patch.object(store.db, "commit", side_effect=StaleDataError("version mismatch"))

        with pytest.raises(ConversationConflictError):
            await store.update("a", {"title": "Lost"})

        await store.invalidate("a")
        assert store._snapshot_key("a").endswith(":a")

    @pytest.mark.unit
    async def test_set_active(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        await store.create(conversation_id="b", title="B")

        await store.set_active("a")
        await store.set_active("b")

        assert (await store.get("a")).is_active is False
        assert (await store.get("b")).is_active is True

    @pytest.mark.unit
    async def test_delete(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        await store.add_message("a", "user", "hello")

        await store.delete("a")

        assert await store.find("a") is None
        assert await store.count_messages() == 0


class TestLimits:

    @pytest.mark.unit
    async def test_conversation_limit_free(self, store: ConversationStore) -> None:
        for i in range(10):
            await store.create(conversation_id=f"c{i}", title=f"C{i}")

        check = await store.can_create_conversation()
        assert check.allowed is False
        with pytest.raises(ConversationLimitError):
            await store.create(title="One too many")

    @pytest.mark.unit
    async def test_hub_exempt_from_conversation_limit(self, store: ConversationStore) -> None:
        for i in range(10):
            await store.create(conversation_id=f"c{i}", title=f"C{i}")

        hub = await store.ensure_general_hub()

        assert hub.id == GENERAL_HUB_ID

    @pytest.mark.unit
    async def test_message_limit_per_conversation(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        for i in range(20):
            await store.add_message("a", "user", f"message {i}")

        check = await store.can_add_message("a")
        assert check.allowed is False
        assert "20" in check.reason
        with pytest.raises(ConversationLimitError):
            await store.add_message("a", "user", "one more")

    @pytest.mark.unit
    async def test_pro_limits(self, db: AsyncSession, make_user: Callable) -> None:
        pro = await make_user(auth_id="pro", tier=TIER_PRO)
        store = ConversationStore(db, pro)

        stats = await store.usage_stats()

        assert stats["conversations"]["limit"] == 50
        assert stats["messages_per_conversation"]["limit"] == 100
        assert stats["total_messages"]["limit"] == 1000

    @pytest.mark.unit
    async def test_can_add_message_missing(self, store: ConversationStore) -> None:
        check = await store.can_add_message("nope")

        assert check.allowed is False


class TestMessages:

    @pytest.mark.unit
    async def test_messages_ordered(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        for text in ("one", "two", "three"):
            await store.add_message("a", "user", text)

        conversation = await store.get("a")

        assert [m.content for m in conversation.messages] == ["one", "two", "three"]
        assert conversation.last_interaction_at is not None

    @pytest.mark.unit
    async def test_duplicate_message_id(self, store: ConversationStore) -> None:
        await store.create(conversation_id="a", title="A")
        await store.add_message("a", "user", "hi", message_id="m1")

        with pytest.raises(ConversationConflictError):
            await store.add_message("a", "user", "hi again", message_id="m1")


class TestGameTabs:

    @pytest.mark.unit
    async def test_get_or_create(self, store: ConversationStore) -> None:
        tab, created = await store.get_or_create_game_tab("Elden Ring", genre="Souls-like")
        again, created_again = await store.get_or_create_game_tab("Elden Ring")

        assert created is True
        assert created_again is False
        assert tab.id == again.id == "elden-ring"
        assert tab.game_title == "Elden Ring"
        assert tab.insights is None

    @pytest.mark.unit
    async def test_with_insights(self, store: ConversationStore) -> None:
        tab, _ = await store.get_or_create_game_tab("Elden Ring", genre="Souls-like", with_insights=True)

        assert tab.insights_order[0] == "story_so_far"
        assert all(t["status"] == "loading" for t in tab.insights.values())
        assert isinstance(tab, Conversation)
