"""
Monthly quota endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...dependencies import get_current_user_required
from ...models.user import User
from ...quota import can_send_query, get_usage_info
from ...schemas.usage import QuotaCheckRequest, QuotaCheckResponse, UsageResponse

router = APIRouter()


@router.get("", response_model=UsageResponse)
async def read_usage(
    user: User = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Current month's usage and limits."""
    return await get_usage_info(db, user)


@router.post("/check", response_model=QuotaCheckResponse)
async def check_quota(
    request: QuotaCheckRequest,
    user: User = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Check whether the next query(s) would be allowed, without consuming quota."""
    decision = await can_send_query(db, user, request.query_type, request.count)
    return QuotaCheckResponse(**decision._asdict())
