"""Pydantic schemas for usage, trial and tier endpoints."""
from typing import Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class QueryUsage(BaseModel):
    used: int
    limit: int
    remaining: int


class UsageResponse(BaseModel):
    """Monthly quota for the current user."""
    tier: str
    total_requests: int
    last_reset: Optional[datetime] = None
    text: QueryUsage
    image: QueryUsage


class QuotaCheckRequest(BaseModel):
    query_type: Literal["text", "image"] = "text"
    count: int = Field(default=1, ge=1, le=100)


class QuotaCheckResponse(BaseModel):
    allowed: bool
    used: int
    limit: int
    reason: Optional[str] = None


class TrialStatusResponse(BaseModel):
    """Result of a session-start trial check or a trial start."""
    tier: str
    is_on_trial: bool
    expired: bool = False
    downgraded: bool = False
    warning: Optional[str] = None
    expires_at: Optional[datetime] = None
    hours_remaining: Optional[float] = None


class TierChangeRequest(BaseModel):
    tier: Literal["free", "pro", "vanguard_pro"]


class TierResponse(BaseModel):
    tier: str
    is_on_trial: bool
    has_used_trial: bool
