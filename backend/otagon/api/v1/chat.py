"""
Chat endpoint: one companion turn.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.chat import ChatRequest, ChatResponse
from ...services.chat_service import ChatService
from ..deps import get_chat_service

router = APIRouter()


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service)
):
    """
    Send a message to Otagon.

    The reply may be filed under a different conversation than the one the
    message was sent from when the AI identifies a game; ``conversation_id``
    in the response says where both messages ended up.
    """
    try:
        result = await service.send(
            request.message,
            conversation_id=request.conversation_id,
            image=request.image,
            is_active_session=request.is_active_session
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return ChatResponse(**result._asdict())
