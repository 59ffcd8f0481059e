"""
API dependencies for dependency injection.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_current_user_required
from ..models.user import User
from ..services.cache import CacheClient, cache_client
from ..services.chat_service import ChatService
from ..services.conversation_store import ConversationStore
from ..services.gemini_client import GeminiClient, get_gemini_client as _shared_gemini_client
from ..services.message_router import MessageRouter


async def get_cache() -> CacheClient:
    """Get the conversation cache instance."""
    return cache_client


def get_gemini_client() -> GeminiClient:
    """Get Gemini client instance."""
    return _shared_gemini_client()


def get_conversation_store(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user_required),
    cache: CacheClient = Depends(get_cache)
) -> ConversationStore:
    """Get the conversation store for the current user."""
    return ConversationStore(db, user, cache)


def get_message_router(
    store: ConversationStore = Depends(get_conversation_store)
) -> MessageRouter:
    return MessageRouter(store)


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user_required),
    store: ConversationStore = Depends(get_conversation_store),
    gemini: GeminiClient = Depends(get_gemini_client)
) -> ChatService:
    return ChatService(db, user, store, gemini)
