"""
Chat request flow.

quota -> user message -> AI call -> tag parsing -> routing to a game tab
-> tag side effects -> reply.

Quota is consumed before the AI call, so a failed AI call still counts
against the month.
"""
from typing import Any, Dict, List, NamedTuple, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ConversationLimitError
from ..models.conversation import Conversation, GENERAL_HUB_ID
from ..models.usage import QUERY_IMAGE, QUERY_TEXT
from ..models.user import User
from ..quota import get_usage_info, record_query
from . import otakon_tags as tags_
from .conversation_store import ConversationStore
from .game_tabs import apply_insight_update, fill_insights, tier_has_insights
from .gemini_client import GeminiClient, image_part
from .message_router import MessageRouter, should_route_message
from .prompts import build_prompt

EMPTY_REPLY = "I couldn't come up with an answer for that. Could you rephrase?"


class ChatResult(NamedTuple):
    content: str
    conversation_id: str
    user_message_id: str
    assistant_message_id: str
    suggestions: List[str]
    routed: bool
    hint: Optional[str]
    triumph: Optional[Dict[str, Any]]
    usage: Dict[str, Any]


def _suggestions(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(s) for s in value if str(s).strip()][:3]
    return []


def _triumph(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict) and value.get("type"):
        return value
    return None


def tag_updates(conversation: Conversation, tags: Dict[str, Any]) -> Dict[str, Any]:
    """Conversation field changes implied by the response tags."""
    fields: Dict[str, Any] = {}

    genre = tags.get(tags_.GENRE)
    if isinstance(genre, str) and genre and not conversation.genre:
        fields["genre"] = genre

    if tags_.GAME_PROGRESS in tags:
        progress = tags_.parse_progress(tags[tags_.GAME_PROGRESS])
        if progress is not None:
            fields["progress"] = progress

    objective = tags.get(tags_.OBJECTIVE_SET)
    if isinstance(objective, dict) and objective.get("description"):
        fields["active_objective"] = {
            "description": str(objective["description"]),
            "is_completed": False,
        }
    elif isinstance(objective, str) and objective:
        fields["active_objective"] = {"description": objective, "is_completed": False}

    if tags_.is_truthy_tag(tags.get(tags_.OBJECTIVE_COMPLETE, False)):
        current = fields.get("active_objective") or conversation.active_objective
        if current:
            fields["active_objective"] = {**current, "is_completed": True}

    inventory = tags.get(tags_.INVENTORY)
    if isinstance(inventory, list):
        fields["inventory"] = [str(i) for i in inventory]

    insights = apply_insight_update(conversation.insights, tags.get(tags_.INSIGHT_UPDATE))
    if insights is not None:
        fields["insights"] = insights

    return fields


class ChatService:
    """Runs one chat turn for a user."""

    def __init__(self, db: AsyncSession, user: User, store: ConversationStore, ai: GeminiClient):
        self.db = db
        self.user = user
        self.user_id = user.id
        self.store = store
        self.ai = ai
        self.router = MessageRouter(store)

    async def _conversation(self, conversation_id: Optional[str]) -> Conversation:
        if not conversation_id or conversation_id == GENERAL_HUB_ID:
            return await self.store.ensure_general_hub()
        return await self.store.get(conversation_id)

    async def _game_tab(self, game_title: str, genre: Optional[str]) -> Optional[Conversation]:
        with_insights = tier_has_insights(self.user.tier)
        try:
            tab, created = await self.store.get_or_create_game_tab(
                game_title, genre=genre, with_insights=with_insights
            )
        except ConversationLimitError as e:
            logger.info("Not creating game tab user_id={} game={}: {}", self.user_id, game_title, e.detail)
            return None

        if created and with_insights:
            generated = await self.ai.generate_insights(game_title, genre)
            tab = await self.store.update(tab.id, {"insights": fill_insights(tab.insights, generated)})
        return tab

    async def send(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        image: Optional[str] = None,
        is_active_session: bool = False
    ) -> ChatResult:
        """
        Handle one user message.

        Raises:
            ConversationNotFoundError, ConversationLimitError, QuotaExceededError,
            AIServiceError
        """
        if image:
            # Reject malformed screenshots before any quota is spent
            image_part(image)

        conversation = await self._conversation(conversation_id)

        check = await self.store.can_add_message(conversation.id)
        if not check.allowed:
            raise ConversationLimitError(check.reason)

        await record_query(self.db, self.user, QUERY_IMAGE if image else QUERY_TEXT)

        user_message = await self.store.add_message(
            conversation.id, "user", message, image_url=image
        )
        prompt = build_prompt(conversation, message, has_image=bool(image), is_active_session=is_active_session)
        response = await self.ai.chat(prompt, image=image)

        parsed = tags_.parse_otakon_tags(response.text)
        assistant_message = await self.store.add_message(
            conversation.id, "assistant", parsed.clean_content or EMPTY_REPLY, enforce_limit=False
        )

        target = conversation
        routed = False
        game_title = parsed.tags.get(tags_.GAME_ID)
        confident = str(parsed.tags.get(tags_.CONFIDENCE, "high")).lower() != "low"
        if isinstance(game_title, str) and game_title.strip() and confident:
            game_id = tags_.game_id_from_title(game_title)
            if should_route_message(conversation.id, game_id, is_game_hub=conversation.is_general_hub):
                genre = parsed.tags.get(tags_.GENRE)
                tab = await self._game_tab(game_title.strip(), genre if isinstance(genre, str) else None)
                if tab is not None:
                    await self.router.migrate(
                        [user_message.message_id, assistant_message.message_id],
                        conversation.id,
                        tab.id
                    )
                    target = tab
                    routed = True

        if not target.is_general_hub:
            fields = tag_updates(target, parsed.tags)
            if fields:
                await self.store.update(target.id, fields)

        usage = await get_usage_info(self.db, self.user)
        logger.info(
            "Chat turn user_id={} conversation={} routed={} model={}",
            self.user_id, target.id, routed, response.model
        )
        return ChatResult(
            content=parsed.clean_content or EMPTY_REPLY,
            conversation_id=target.id,
            user_message_id=user_message.message_id,
            assistant_message_id=assistant_message.message_id,
            suggestions=_suggestions(parsed.tags.get(tags_.SUGGESTIONS)),
            routed=routed,
            hint=parsed.hint,
            triumph=_triumph(parsed.tags.get(tags_.TRIUMPH)),
            usage=usage,
        )
