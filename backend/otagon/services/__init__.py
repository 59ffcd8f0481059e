"""Services package."""
from .cache import CacheClient, MemoryCache, RedisClient
from .chat_service import ChatService
from .conversation_store import ConversationStore
from .gemini_client import GeminiClient
from .message_router import MessageRouter
from .pairing import PairingHub

__all__ = [
    "CacheClient", "MemoryCache", "RedisClient", "ChatService",
    "ConversationStore", "GeminiClient", "MessageRouter", "PairingHub"
]
