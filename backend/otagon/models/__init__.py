"""
Otagon Database Models
======================
All SQLAlchemy ORM models for the application.
"""

from .user import User, TIER_FREE, TIER_PRO, TIER_VANGUARD, TIERS
from .usage import (
    UserUsage,
    QUERY_TEXT,
    QUERY_IMAGE,
    QUERY_TYPES,
    TIER_QUERY_LIMITS,
    QUOTA_MESSAGE,
    limits_for_tier,
)
from .conversation import (
    Conversation,
    ChatMessage,
    GENERAL_HUB_ID,
    GENERAL_HUB_TITLE,
    LEGACY_HUB_TITLE,
    TIER_CONVERSATION_LIMITS,
    TIER_MESSAGE_LIMITS,
    TIER_TOTAL_MESSAGE_LIMITS,
)

__all__ = [
    "User",
    "UserUsage",
    "Conversation",
    "ChatMessage",
    "TIER_FREE",
    "TIER_PRO",
    "TIER_VANGUARD",
    "TIERS",
    "QUERY_TEXT",
    "QUERY_IMAGE",
    "QUERY_TYPES",
    "TIER_QUERY_LIMITS",
    "QUOTA_MESSAGE",
    "limits_for_tier",
    "GENERAL_HUB_ID",
    "GENERAL_HUB_TITLE",
    "LEGACY_HUB_TITLE",
    "TIER_CONVERSATION_LIMITS",
    "TIER_MESSAGE_LIMITS",
    "TIER_TOTAL_MESSAGE_LIMITS",
]
