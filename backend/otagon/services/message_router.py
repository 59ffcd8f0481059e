"""
Moves messages between conversation tabs.

A migration loads both conversations, moves the requested messages from
source to destination in the session and commits once. Both conversations
are version-checked on flush, so a concurrent writer to either one makes
the whole migration fail with ``ConversationConflictError`` and nothing is
moved.
"""
from typing import Iterable, List, NamedTuple, Sequence

from loguru import logger

from ..exceptions import ConversationConflictError
from ..models.conversation import ChatMessage
from ..timeutils import ensure_utc, utcnow
from .conversation_store import ConversationStore


class MigrationResult(NamedTuple):
    moved: int
    duplicates_skipped: int
    from_count: int
    to_count: int


def should_route_message(current_tab_id: str, target_tab_id: str, is_game_hub: bool = False) -> bool:
    """True when a message sent in ``current_tab_id`` belongs in another tab."""
    if not target_tab_id or target_tab_id == current_tab_id:
        return False
    # Messages sent from a game tab stay there; only hub messages are re-filed
    return is_game_hub


def message_exists(messages: Sequence[ChatMessage], message_id: str) -> bool:
    return any(m.message_id == message_id for m in messages)


class MessageRouter:
    """Atomic message migration between two conversations of one user."""

    def __init__(self, store: ConversationStore):
        self.store = store

    async def migrate(
        self,
        message_ids: Iterable[str],
        from_conversation_id: str,
        to_conversation_id: str
    ) -> MigrationResult:
        """
        Move messages from one conversation to another.

        Messages the destination already holds (same message id) are dropped
        from the source instead of being copied again. Ids not present in the
        source are ignored.

        Raises:
            ValueError if source and destination are the same conversation
            ConversationNotFoundError if either conversation is missing
            ConversationConflictError if either conversation changed concurrently
        """
        if from_conversation_id == to_conversation_id:
            raise ValueError("Source and destination conversations must differ")

        wanted: List[str] = list(dict.fromkeys(message_ids))
        source = await self.store.get(from_conversation_id)
        destination = await self.store.get(to_conversation_id)

        selected = set(wanted)
        to_move = [m for m in source.messages if m.message_id in selected]
        if not to_move:
            logger.info(
                "Nothing to migrate from={} to={} requested={}",
                from_conversation_id, to_conversation_id, len(wanted)
            )
            return MigrationResult(0, 0, len(source.messages), len(destination.messages))

        existing = {m.message_id for m in destination.messages}
        moved = 0
        duplicates = 0

        try:
            for message in to_move:
                source.messages.remove(message)
                if message.message_id in existing:
                    # Orphaned from the source, deleted on flush
                    duplicates += 1
                    continue
                destination.messages.append(message)
                existing.add(message.message_id)
                moved += 1

            destination.messages.sort(key=lambda m: (ensure_utc(m.created_at), m.pk or 0))

            now = utcnow()
            source.updated_at = now
            destination.updated_at = now
            destination.last_interaction_at = now

            await self.store.commit()
        except ConversationConflictError:
            logger.warning(
                "Migration aborted by concurrent write from={} to={}",
                from_conversation_id, to_conversation_id
            )
            raise
        except Exception:
            await self.store.db.rollback()
            raise
        finally:
            await self.store.invalidate(from_conversation_id, to_conversation_id)

        logger.info(
            "Migrated messages from={} to={} moved={} duplicates={}",
            from_conversation_id, to_conversation_id, moved, duplicates
        )
        return MigrationResult(moved, duplicates, len(source.messages), len(destination.messages))
