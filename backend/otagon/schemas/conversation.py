"""Pydantic schemas for conversation endpoints."""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None


class ConversationSummary(BaseModel):
    """Conversation without its messages, as listed in the sidebar."""
    id: str
    title: str
    game_id: Optional[str] = None
    game_title: Optional[str] = None
    genre: Optional[str] = None
    progress: Optional[int] = None
    active_objective: Optional[Dict[str, Any]] = None
    inventory: Optional[List[str]] = None
    insights: Optional[Dict[str, Dict[str, Any]]] = None
    insights_order: Optional[List[str]] = None
    is_pinned: bool = False
    is_archived: bool = False
    is_active: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_interaction_at: Optional[datetime] = None
    version: int
    message_count: int = 0


class ConversationOut(ConversationSummary):
    messages: List[MessageOut] = []


class ConversationCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    game_title: Optional[str] = Field(default=None, max_length=200)
    genre: Optional[str] = Field(default=None, max_length=50)


class ConversationUpdate(BaseModel):
    """Partial update; ``version`` is the version the client last saw."""
    version: Optional[int] = None
    title: Optional[str] = Field(default=None, max_length=200)
    is_pinned: Optional[bool] = None
    is_archived: Optional[bool] = None
    genre: Optional[str] = Field(default=None, max_length=50)
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    active_objective: Optional[Dict[str, Any]] = None
    inventory: Optional[List[str]] = None

    @field_validator("title", "is_pinned", "is_archived")
    @classmethod
    def not_null(cls, v):
        # Omit the field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class MessageCreate(BaseModel):
    role: str = Field(default="user", pattern="^(user|assistant|system)$")
    content: str = Field(min_length=1)
    image_url: Optional[str] = None
    message_id: Optional[str] = Field(default=None, max_length=64)


class MigrateRequest(BaseModel):
    message_ids: List[str] = Field(min_length=1)
    to_conversation_id: str


class MigrateResponse(BaseModel):
    moved: int
    duplicates_skipped: int
    from_count: int
    to_count: int


class ConversationStats(BaseModel):
    tier: str
    conversations: Dict[str, int]
    messages_per_conversation: Dict[str, int]
    total_messages: Dict[str, int]
