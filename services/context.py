"""Context aggregation for assistant replies."""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Tuple
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging
import os

from models.messages import Message, ASSISTANT_USER_ID
from services.messages import MessageService, ProfileService

logger = logging.getLogger(__name__)

BACKGROUND_CONTEXT_LIMIT = int(os.getenv("BACKGROUND_CONTEXT_LIMIT", "30"))


class ContextUnavailableError(Exception):
    """The active thread's history could not be loaded."""


@dataclass
class AggregatedContext:
    """Everything the prompt composer needs for one reply."""
    history: List[Message]
    background: List[Message] = field(default_factory=list)
    participant_ids: List[str] = field(default_factory=list)
    roster: List[str] = field(default_factory=list)
    # (display name, background context) per participant with a profile note
    profile_notes: List[Tuple[str, str]] = field(default_factory=list)


def fallback_name(user_id: str) -> str:
    return f"User {user_id[:8]}"


class ContextService:
    """Reads the store and assembles an AggregatedContext."""

    @staticmethod
    def load_history(db: Session, thread_id: UUID, exclude_message_id: Optional[UUID] = None) -> List[Message]:
        try:
            messages = MessageService.list_thread_messages(db, thread_id)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching messages for thread {thread_id}: {e}")
            db.rollback()
            raise ContextUnavailableError(f"Could not load thread {thread_id}") from e

        if exclude_message_id is None:
            return messages
        return [msg for msg in messages if msg.id != exclude_message_id]

    @staticmethod
    def load_background(db: Session, thread_id: UUID, limit: int) -> List[Message]:
        """Recent messages from other threads in chronological order."""
        try:
            recent = MessageService.list_recent_outside_thread(db, thread_id, limit)
        except SQLAlchemyError as e:
            logger.warning(f"Proceeding without background context for thread {thread_id}: {e}")
            db.rollback()
            return []

        recent.reverse()
        return recent

    @staticmethod
    def load_profile_notes(db: Session, participant_ids: List[str], names: Dict[str, str]) -> List[Tuple[str, str]]:
        try:
            contexts = ProfileService.get_background_contexts(db, participant_ids)
        except SQLAlchemyError as e:
            logger.warning(f"Proceeding without profile context: {e}")
            db.rollback()
            return []

        return [
            (names.get(user_id) or fallback_name(user_id), contexts[user_id])
            for user_id in participant_ids
            if user_id in contexts
        ]

    @staticmethod
    def aggregate(
        db: Session,
        thread_id: UUID,
        user_id: str,
        user_name: Optional[str],
        background_limit: int = BACKGROUND_CONTEXT_LIMIT,
        exclude_message_id: Optional[UUID] = None
    ) -> AggregatedContext:
        """
        Gather thread history, background messages, roster and profile notes.

        Raises ContextUnavailableError when the thread history cannot be
        read. Background and profile failures only degrade the result.
        """
        history = ContextService.load_history(db, thread_id, exclude_message_id)

        # dicts keep first-seen order so composed prompts are reproducible
        names: Dict[str, str] = {}
        roster: Dict[str, None] = {}
        for msg in history:
            if msg.user_id == ASSISTANT_USER_ID:
                continue
            names.setdefault(msg.user_id, msg.user_name)
            if msg.user_name:
                roster.setdefault(msg.user_name, None)

        if user_name:
            names.setdefault(user_id, user_name)
            roster.setdefault(user_name, None)

        participant_ids = list(names)
        if user_id not in participant_ids:
            participant_ids.append(user_id)

        background = ContextService.load_background(db, thread_id, background_limit)
        profile_notes = ContextService.load_profile_notes(db, participant_ids, names)

        logger.info(
            f"Aggregated context for thread {thread_id}: {len(history)} messages, "
            f"{len(background)} background, {len(roster)} in roster"
        )

        return AggregatedContext(
            history=history,
            background=background,
            participant_ids=participant_ids,
            roster=list(roster),
            profile_notes=profile_notes
        )
