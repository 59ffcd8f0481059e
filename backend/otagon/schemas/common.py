"""Common Pydantic schemas used across the API."""
from typing import Optional
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str = "ok"
    version: str
    database: str = "unknown"
    cache: str = "unknown"


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    error: str
    message: str
    detail: Optional[str] = None
