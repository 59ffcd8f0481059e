"""
Session start, trial and tier endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...dependencies import get_current_user_required
from ...models.user import User
from ...schemas.usage import TierChangeRequest, TierResponse, TrialStatusResponse
from ...services.conversation_store import ConversationStore
from ...trial import change_tier, check_trial_status, start_free_trial
from ..deps import get_conversation_store

router = APIRouter()


@router.post("/session/start", response_model=TrialStatusResponse)
async def session_start(
    user: User = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db),
    store: ConversationStore = Depends(get_conversation_store)
):
    """
    Run once when the app opens: expire a finished trial and make sure the
    "Everything else" tab exists.
    """
    status = await check_trial_status(db, user)
    await store.ensure_general_hub()
    return TrialStatusResponse(**status._asdict())


@router.post("/tier/trial", response_model=TrialStatusResponse)
async def start_trial(
    user: User = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Start the one-time Pro trial."""
    status = await start_free_trial(db, user)
    return TrialStatusResponse(**status._asdict())


@router.post("/tier/upgrade", response_model=TierResponse)
async def upgrade_tier(
    request: TierChangeRequest,
    user: User = Depends(get_current_user_required),
    db: AsyncSession = Depends(get_db)
):
    """Change the subscription tier."""
    user = await change_tier(db, user, request.tier)
    return TierResponse(
        tier=user.tier,
        is_on_trial=bool(user.is_on_trial),
        has_used_trial=bool(user.has_used_trial)
    )
