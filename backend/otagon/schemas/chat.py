"""Pydantic schemas for the chat endpoint."""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .usage import UsageResponse


class ChatRequest(BaseModel):
    """Request schema for chat endpoint."""
    message: str = Field(min_length=1, max_length=8000)
    conversation_id: Optional[str] = None
    image: Optional[str] = None  # base64 data URL of a screenshot
    is_active_session: bool = False


class ChatResponse(BaseModel):
    """Assistant reply and where it was filed."""
    content: str
    conversation_id: str
    user_message_id: str
    assistant_message_id: str
    suggestions: List[str] = []
    routed: bool = False
    hint: Optional[str] = None
    triumph: Optional[Dict[str, Any]] = None  # victory screen details, e.g. boss_defeated
    usage: UsageResponse
