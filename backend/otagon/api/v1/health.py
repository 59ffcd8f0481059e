"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...database import get_db
from ...schemas.common import HealthResponse
from ...services.cache import CacheClient
from ..deps import get_cache

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: CacheClient = Depends(get_cache)
):
    """
    Check the health of the API and its dependencies.
    """
    db_status = "unknown"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        db_status = "disconnected"

    cache_status = "unknown"
    try:
        cache_status = "connected" if await cache.ping() else "disconnected"
    except Exception:
        cache_status = "disconnected"

    return HealthResponse(
        status="ok" if db_status == "connected" else "degraded",
        version=settings.APP_VERSION,
        database=db_status,
        cache=cache_status
    )
