"""Pydantic schemas package."""
from .chat import ChatRequest, ChatResponse
from .common import HealthResponse, ErrorResponse
from .conversation import (
    ConversationCreate, ConversationOut, ConversationStats, ConversationSummary,
    ConversationUpdate, MessageCreate, MessageOut, MigrateRequest, MigrateResponse
)
from .usage import (
    QueryUsage, QuotaCheckRequest, QuotaCheckResponse, TierChangeRequest,
    TierResponse, TrialStatusResponse, UsageResponse
)

__all__ = [
    "ChatRequest", "ChatResponse",
    "HealthResponse", "ErrorResponse",
    "ConversationCreate", "ConversationOut", "ConversationStats", "ConversationSummary",
    "ConversationUpdate", "MessageCreate", "MessageOut", "MigrateRequest", "MigrateResponse",
    "QueryUsage", "QuotaCheckRequest", "QuotaCheckResponse", "TierChangeRequest",
    "TierResponse", "TrialStatusResponse", "UsageResponse"
]
