"""
Conversation store: per-user conversation CRUD over the database with a
cache-aside snapshot layer.

Writes go to the database first and then invalidate the cached snapshots.
Every write bumps the conversation ``version``; a concurrent writer that
flushed first turns the later write into a ``ConversationConflictError``
instead of silently overwriting it.
"""
import uuid
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..exceptions import (
    ConversationConflictError,
    ConversationLimitError,
    ConversationNotFoundError,
)
from ..models.conversation import (
    ChatMessage,
    Conversation,
    GENERAL_HUB_ID,
    GENERAL_HUB_TITLE,
    LEGACY_HUB_TITLE,
    TIER_CONVERSATION_LIMITS,
    TIER_MESSAGE_LIMITS,
    TIER_TOTAL_MESSAGE_LIMITS,
)
from ..models.user import User, TIER_FREE
from ..timeutils import ensure_utc, utcnow
from .cache import CacheClient
from .game_tabs import build_insights
from .otakon_tags import game_id_from_title

DEFAULT_CONVERSATION_TITLE = "New Conversation"

UPDATABLE_FIELDS = {
    "title",
    "is_pinned",
    "is_archived",
    "game_title",
    "genre",
    "progress",
    "active_objective",
    "inventory",
    "insights",
    "insights_order",
    "last_interaction_at",
}


class LimitCheck(NamedTuple):
    allowed: bool
    reason: Optional[str] = None


def _iso(value) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def serialize_message(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.message_id,
        "role": message.role,
        "content": message.content,
        "image_url": message.image_url,
        "created_at": _iso(message.created_at),
    }


def serialize_conversation(conversation: Conversation, include_messages: bool = True) -> Dict[str, Any]:
    data = {
        "id": conversation.id,
        "title": conversation.title,
        "game_id": conversation.game_id,
        "game_title": conversation.game_title,
        "genre": conversation.genre,
        "progress": conversation.progress,
        "active_objective": conversation.active_objective,
        "inventory": conversation.inventory,
        "insights": conversation.insights,
        "insights_order": conversation.insights_order,
        "is_pinned": bool(conversation.is_pinned),
        "is_archived": bool(conversation.is_archived),
        "is_active": bool(conversation.is_active),
        "created_at": _iso(conversation.created_at),
        "updated_at": _iso(conversation.updated_at),
        "last_interaction_at": _iso(conversation.last_interaction_at),
        "version": conversation.version,
        "message_count": len(conversation.messages),
    }
    if include_messages:
        data["messages"] = [serialize_message(m) for m in conversation.messages]
    return data


def _sort_key(conversation: Conversation):
    # Hub first, then pinned, then most recently updated
    updated = ensure_utc(conversation.updated_at)
    return (
        conversation.id != GENERAL_HUB_ID,
        not conversation.is_pinned,
        -(updated.timestamp() if updated else 0.0),
    )


class ConversationStore:
    """Conversation CRUD for one user."""

    def __init__(self, db: AsyncSession, user: User, cache: Optional[CacheClient] = None):
        self.db = db
        self.user = user
        self.user_id = user.id
        self.cache = cache

    # ===== Limits =====

    @property
    def tier(self) -> str:
        return self.user.tier or TIER_FREE

    def conversation_limit(self) -> int:
        return TIER_CONVERSATION_LIMITS.get(self.tier, TIER_CONVERSATION_LIMITS[TIER_FREE])

    def message_limit(self) -> int:
        return TIER_MESSAGE_LIMITS.get(self.tier, TIER_MESSAGE_LIMITS[TIER_FREE])

    def total_message_limit(self) -> int:
        return TIER_TOTAL_MESSAGE_LIMITS.get(self.tier, TIER_TOTAL_MESSAGE_LIMITS[TIER_FREE])

    async def count_conversations(self) -> int:
        stmt = select(func.count(Conversation.pk)).where(Conversation.user_id == self.user_id)
        return (await self.db.execute(stmt)).scalar_one()

    async def count_messages(self) -> int:
        stmt = (
            select(func.count(ChatMessage.pk))
            .join(Conversation, ChatMessage.conversation_pk == Conversation.pk)
            .where(Conversation.user_id == self.user_id)
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def can_create_conversation(self) -> LimitCheck:
        limit = self.conversation_limit()
        if await self.count_conversations() >= limit:
            return LimitCheck(
                False,
                f"You've reached the maximum of {limit} conversations for {self.tier} tier. "
                "Upgrade to create more conversations."
            )
        return LimitCheck(True)

    async def can_add_message(self, conversation_id: str) -> LimitCheck:
        conversation = await self.find(conversation_id)
        if conversation is None:
            return LimitCheck(False, "Conversation not found")
        return await self._check_message_limits(conversation)

    async def _check_message_limits(self, conversation: Conversation) -> LimitCheck:
        limit = self.message_limit()
        if len(conversation.messages) >= limit:
            return LimitCheck(
                False,
                f"This conversation has reached the maximum of {limit} messages for {self.tier} tier. "
                "Start a new conversation."
            )

        total_limit = self.total_message_limit()
        if await self.count_messages() >= total_limit:
            return LimitCheck(
                False,
                f"You've reached the maximum of {total_limit} total messages for {self.tier} tier. "
                "Upgrade to send more messages."
            )
        return LimitCheck(True)

    async def usage_stats(self) -> Dict[str, Any]:
        return {
            "tier": self.tier,
            "conversations": {
                "current": await self.count_conversations(),
                "limit": self.conversation_limit(),
            },
            "messages_per_conversation": {"limit": self.message_limit()},
            "total_messages": {
                "current": await self.count_messages(),
                "limit": self.total_message_limit(),
            },
        }

    # ===== Cache =====

    def _snapshot_key(self, conversation_id: str) -> str:
        return f"conversation:{self.user_id}:{conversation_id}"

    def _listing_key(self) -> str:
        return f"conversations:{self.user_id}"

    async def _cache_get(self, key: str) -> Optional[Any]:
        if self.cache is None:
            return None
        try:
            return await self.cache.cache_get(key)
        except Exception as e:
            logger.warning("Conversation cache read failed key={}: {}", key, e)
            return None

    async def _cache_set(self, key: str, value: Any) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.cache_set(key, value)
        except Exception as e:
            logger.warning("Conversation cache write failed key={}: {}", key, e)

    async def invalidate(self, *conversation_ids: str) -> None:
        if self.cache is None:
            return
        try:
            for conversation_id in conversation_ids:
                await self.cache.cache_delete(self._snapshot_key(conversation_id))
            await self.cache.cache_delete(self._listing_key())
        except Exception as e:
            logger.warning("Conversation cache invalidation failed: {}", e)

    # ===== Reads =====

    async def find(self, conversation_id: str) -> Optional[Conversation]:
        stmt = select(Conversation).where(
            Conversation.user_id == self.user_id,
            Conversation.id == conversation_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, conversation_id: str) -> Conversation:
        conversation = await self.find(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def list(self, include_archived: bool = True) -> List[Conversation]:
        stmt = select(Conversation).where(Conversation.user_id == self.user_id)
        if not include_archived:
            stmt = stmt.where(Conversation.is_archived.is_(False))
        result = await self.db.execute(stmt)
        conversations = list(result.scalars().all())
        conversations.sort(key=_sort_key)
        return conversations

    async def get_snapshot(self, conversation_id: str) -> Dict[str, Any]:
        key = self._snapshot_key(conversation_id)
        cached = await self._cache_get(key)
        if cached is not None:
            return cached

        snapshot = serialize_conversation(await self.get(conversation_id))
        await self._cache_set(key, snapshot)
        return snapshot

    async def list_snapshots(self) -> List[Dict[str, Any]]:
        key = self._listing_key()
        cached = await self._cache_get(key)
        if cached is not None:
            return cached

        snapshots = [
            serialize_conversation(c, include_messages=False)
            for c in await self.list()
        ]
        await self._cache_set(key, snapshots)
        return snapshots

    # ===== Writes =====

    async def commit(self) -> None:
        """Commit the session, translating concurrency failures."""
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("Conversation write lost a race user_id={}: {}", self.user_id, e)
            raise ConversationConflictError("Conversation was modified concurrently") from e
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Conversation write violated a constraint user_id={}: {}", self.user_id, e.orig)
            raise ConversationConflictError("Conversation write conflicts with existing data") from e

    async def create(
        self,
        title: Optional[str] = None,
        conversation_id: Optional[str] = None,
        game_title: Optional[str] = None,
        genre: Optional[str] = None,
        insights: Optional[Dict[str, Any]] = None,
        insights_order: Optional[List[str]] = None,
        is_pinned: bool = False,
        enforce_limit: bool = True
    ) -> Conversation:
        """
        Create a conversation.

        Raises:
            ConversationLimitError if the tier's conversation limit is reached
            ConversationConflictError if the id is already taken
        """
        if enforce_limit:
            check = await self.can_create_conversation()
            if not check.allowed:
                raise ConversationLimitError(check.reason)

        conversation_id = conversation_id or f"conv_{uuid.uuid4().hex[:12]}"
        if await self.find(conversation_id) is not None:
            raise ConversationConflictError(f"Conversation {conversation_id} already exists")

        now = utcnow()
        conversation = Conversation(
            id=conversation_id,
            user_id=self.user_id,
            title=title or DEFAULT_CONVERSATION_TITLE,
            game_id=game_id_from_title(game_title) if game_title else None,
            game_title=game_title,
            genre=genre,
            insights=insights,
            insights_order=insights_order,
            is_pinned=is_pinned,
            is_archived=False,
            is_active=False,
            created_at=now,
            updated_at=now,
            messages=[]
        )
        self.db.add(conversation)
        await self.commit()
        await self.invalidate(conversation_id)

        logger.info("Conversation created user_id={} id={}", self.user_id, conversation_id)
        return conversation

    async def ensure_general_hub(self) -> Conversation:
        """Get the "Everything else" hub, creating it or fixing its legacy title."""
        hub = await self.find(GENERAL_HUB_ID)
        if hub is None:
            return await self.create(
                title=GENERAL_HUB_TITLE,
                conversation_id=GENERAL_HUB_ID,
                enforce_limit=False
            )

        if hub.title == LEGACY_HUB_TITLE:
            hub.title = GENERAL_HUB_TITLE
            await self.commit()
            await self.invalidate(GENERAL_HUB_ID)
        return hub

    async def get_or_create_game_tab(
        self,
        game_title: str,
        genre: Optional[str] = None,
        with_insights: bool = False
    ) -> Tuple[Conversation, bool]:
        """
        Find the tab for ``game_title`` or create it.

        Returns:
            Tuple of (conversation, created)
        """
        game_id = game_id_from_title(game_title)
        existing = await self.find(game_id)
        if existing is not None:
            return existing, False

        insights, insights_order = (None, None)
        if with_insights:
            insights, insights_order = build_insights(genre)

        conversation = await self.create(
            title=game_title,
            conversation_id=game_id,
            game_title=game_title,
            genre=genre,
            insights=insights,
            insights_order=insights_order
        )
        return conversation, True

    async def update(
        self,
        conversation_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Conversation:
        """
        Apply ``fields`` to a conversation.

        Raises:
            ConversationConflictError if ``expected_version`` is stale
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        conversation = await self.get(conversation_id)
        if expected_version is not None and conversation.version != expected_version:
            raise ConversationConflictError(
                f"Conversation {conversation_id} is at version {conversation.version}, "
                f"expected {expected_version}"
            )

        for key, value in fields.items():
            setattr(conversation, key, value)
        conversation.updated_at = utcnow()

        await self.commit()
        await self.invalidate(conversation_id)
        return conversation

    async def delete(self, conversation_id: str) -> None:
        if conversation_id == GENERAL_HUB_ID:
            raise ConversationLimitError("The Everything else tab can't be deleted.")

        conversation = await self.get(conversation_id)
        await self.db.delete(conversation)
        await self.commit()
        await self.invalidate(conversation_id)
        logger.info("Conversation deleted user_id={} id={}", self.user_id, conversation_id)

    async def set_active(self, conversation_id: str) -> Conversation:
        target = await self.get(conversation_id)
        for conversation in await self.list():
            should_be_active = conversation is target
            if bool(conversation.is_active) != should_be_active:
                conversation.is_active = should_be_active
        await self.commit()
        await self.invalidate(*[c.id for c in await self.list()])
        return target

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        image_url: Optional[str] = None,
        message_id: Optional[str] = None,
        enforce_limit: bool = True
    ) -> ChatMessage:
        """
        Append a message to a conversation.

        Raises:
            ConversationLimitError if a per-conversation or total limit is reached
        """
        conversation = await self.get(conversation_id)
        if enforce_limit:
            check = await self._check_message_limits(conversation)
            if not check.allowed:
                raise ConversationLimitError(check.reason)

        now = utcnow()
        message = ChatMessage(
            message_id=message_id or f"msg_{uuid.uuid4().hex}",
            role=role,
            content=content,
            image_url=image_url,
            created_at=now
        )
        if any(m.message_id == message.message_id for m in conversation.messages):
            raise ConversationConflictError(f"Message {message.message_id} already exists")

        conversation.messages.append(message)
        conversation.updated_at = now
        conversation.last_interaction_at = now

        await self.commit()
        await self.invalidate(conversation_id)
        return message
