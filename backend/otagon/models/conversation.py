"""
Conversation Models
===================
Conversation tabs (general hub and per-game tabs) and their messages.
"""

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from ..database import Base
from .user import TIER_FREE, TIER_PRO, TIER_VANGUARD


GENERAL_HUB_ID = "everything-else"
GENERAL_HUB_TITLE = "Everything else"
LEGACY_HUB_TITLE = "General Chat"

JSONType = JSON().with_variant(JSONB, "postgresql")


class Conversation(Base):
    """Conversation tab - general hub or a game-specific tab"""
    __tablename__ = "conversations"

    pk = Column(Integer, primary_key=True, index=True)
    id = Column(String(128), nullable=False, index=True)  # Public id, unique per user
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(200), nullable=False)

    # Game association (NULL for the general hub)
    game_id = Column(String(128), nullable=True)
    game_title = Column(String(200), nullable=True)
    genre = Column(String(50), nullable=True)
    progress = Column(Integer, nullable=True)  # 0-100
    active_objective = Column(JSONType, nullable=True)  # {"description": ..., "is_completed": ...}
    inventory = Column(JSONType, nullable=True)  # ["item", ...]

    # Insight sub-tabs
    insights = Column(JSONType, nullable=True)  # {tab_id: {id, title, content, status, is_new}}
    insights_order = Column(JSONType, nullable=True)  # [tab_id, ...]

    # Flags
    is_pinned = Column(Boolean, default=False)
    is_archived = Column(Boolean, default=False)
    is_active = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_interaction_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency counter, bumped by SQLAlchemy on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="[ChatMessage.created_at, ChatMessage.pk]",
        lazy="selectin"
    )
    user = relationship("User", back_populates="conversations", lazy="raise")

    __table_args__ = (
        UniqueConstraint("user_id", "id", name="uq_conversation_user_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Conversation(id={self.id}, user_id={self.user_id}, messages={len(self.messages)})>"

    @property
    def is_general_hub(self) -> bool:
        return self.id == GENERAL_HUB_ID


class ChatMessage(Base):
    """Chat message - owned by exactly one conversation"""
    __tablename__ = "chat_messages"

    pk = Column(Integer, primary_key=True, index=True)
    message_id = Column(String(64), nullable=False, index=True)
    conversation_pk = Column(Integer, ForeignKey("conversations.pk", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # 'user', 'assistant', 'system'
    content = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)  # Storage URL or data URL of an attached screenshot

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("conversation_pk", "message_id", name="uq_message_per_conversation"),
    )

    def __repr__(self):
        return f"<ChatMessage(message_id={self.message_id}, role={self.role})>"


# Conversation Limits
TIER_CONVERSATION_LIMITS = {
    TIER_FREE: 10,
    TIER_PRO: 50,
    TIER_VANGUARD: 100,
}

TIER_MESSAGE_LIMITS = {
    TIER_FREE: 20,
    TIER_PRO: 100,
    TIER_VANGUARD: 200,
}

TIER_TOTAL_MESSAGE_LIMITS = {
    TIER_FREE: 200,
    TIER_PRO: 1000,
    TIER_VANGUARD: 2000,
}
