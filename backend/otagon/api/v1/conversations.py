"""
Conversation tab endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ...schemas.conversation import (
    ConversationCreate,
    ConversationOut,
    ConversationStats,
    ConversationSummary,
    ConversationUpdate,
    MessageCreate,
    MessageOut,
    MigrateRequest,
    MigrateResponse,
)
from ...services.conversation_store import (
    ConversationStore,
    serialize_conversation,
    serialize_message,
)
from ...services.message_router import MessageRouter
from ..deps import get_conversation_store, get_message_router

router = APIRouter()


@router.get("", response_model=List[ConversationSummary])
async def list_conversations(store: ConversationStore = Depends(get_conversation_store)):
    """All tabs: the hub first, then pinned, then most recently updated."""
    await store.ensure_general_hub()
    return await store.list_snapshots()


@router.get("/stats", response_model=ConversationStats)
async def conversation_stats(store: ConversationStore = Depends(get_conversation_store)):
    """Conversation and message counts against the tier's limits."""
    return await store.usage_stats()


@router.post("", response_model=ConversationOut, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: ConversationCreate,
    store: ConversationStore = Depends(get_conversation_store)
):
    if request.game_title:
        conversation, _ = await store.get_or_create_game_tab(
            request.game_title,
            genre=request.genre,
            with_insights=store.user.is_paid
        )
    else:
        conversation = await store.create(title=request.title, genre=request.genre)
    return serialize_conversation(conversation)


@router.get("/{conversation_id}", response_model=ConversationOut)
async def get_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store)
):
    return await store.get_snapshot(conversation_id)


@router.patch("/{conversation_id}", response_model=ConversationOut)
async def update_conversation(
    conversation_id: str,
    request: ConversationUpdate,
    store: ConversationStore = Depends(get_conversation_store)
):
    """Partial update; a stale ``version`` is rejected with 409."""
    fields = request.model_dump(exclude_unset=True, exclude={"version"})
    conversation = await store.update(conversation_id, fields, expected_version=request.version)
    return serialize_conversation(conversation)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store)
):
    await store.delete(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{conversation_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def add_message(
    conversation_id: str,
    request: MessageCreate,
    store: ConversationStore = Depends(get_conversation_store)
):
    """Append a message without calling the AI (e.g. a client-side system note)."""
    message = await store.add_message(
        conversation_id,
        request.role,
        request.content,
        image_url=request.image_url,
        message_id=request.message_id
    )
    return serialize_message(message)


@router.post("/{conversation_id}/active", response_model=ConversationOut)
async def set_active_conversation(
    conversation_id: str,
    store: ConversationStore = Depends(get_conversation_store)
):
    conversation = await store.set_active(conversation_id)
    return serialize_conversation(conversation)


@router.post("/{conversation_id}/migrate", response_model=MigrateResponse)
async def migrate_messages(
    conversation_id: str,
    request: MigrateRequest,
    router_: MessageRouter = Depends(get_message_router)
):
    """Move messages from this conversation to another one."""
    try:
        result = await router_.migrate(request.message_ids, conversation_id, request.to_conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return MigrateResponse(**result._asdict())
