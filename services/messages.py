"""Message, profile and read marker services."""
from typing import Optional, List, Dict, Iterable
from uuid import UUID, uuid4
from sqlalchemy.orm import Session
from sqlalchemy import desc, func
import logging

from models.threads import Thread, utc_now
from models.messages import Message, MessageRole, ASSISTANT_USER_ID
from models.profiles import UserProfile, ReadMarker
from services.threads import ThreadService

logger = logging.getLogger(__name__)


class MessageService:
    """Service class for message reads and inserts."""

    @staticmethod
    def get_message(db: Session, message_id: UUID) -> Optional[Message]:
        return db.query(Message).filter(Message.id == message_id).first()

    @staticmethod
    def list_thread_messages(db: Session, thread_id: UUID) -> List[Message]:
        """All messages of a thread, oldest first."""
        return db.query(Message).filter(
            Message.thread_id == thread_id
        ).order_by(
            Message.created_at
        ).all()

    @staticmethod
    def list_recent_outside_thread(db: Session, thread_id: UUID, limit: int) -> List[Message]:
        """The most recent messages of every other thread, newest first."""
        if limit <= 0:
            return []
        return db.query(Message).filter(
            Message.thread_id != thread_id
        ).order_by(
            desc(Message.created_at)
        ).limit(limit).all()

    @staticmethod
    def post_user_message(db: Session, thread: Thread, user_id: str, user_name: str, content: str) -> Message:
        """
        Persist a user message and apply its side effects.

        The thread is auto-titled if it still carries the placeholder and
        the author's read marker moves forward.
        """
        message = Message(
            thread_id=thread.id,
            user_id=user_id,
            user_name=user_name,
            content=content,
            role=MessageRole.USER
        )
        db.add(message)
        db.commit()
        db.refresh(message)

        if ThreadService.apply_auto_title(db, thread, content):
            logger.info(f"Thread {thread.id} titled from first message")

        ReadMarkerService.mark_read(db, user_id, thread.id)
        return message

    @staticmethod
    def insert_assistant_message(
        db: Session, thread_id: UUID, assistant_name: str, content: str, message_id: Optional[UUID] = None
    ) -> Message:
        """Single atomic insert of a finalized assistant reply."""
        message = Message(
            id=message_id or uuid4(),
            thread_id=thread_id,
            user_id=ASSISTANT_USER_ID,
            user_name=assistant_name,
            content=content,
            role=MessageRole.ASSISTANT
        )
        db.add(message)
        db.commit()
        db.refresh(message)
        return message


class ProfileService:
    """Service class for per-user background context."""

    @staticmethod
    def get_profile(db: Session, user_id: str) -> Optional[UserProfile]:
        return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()

    @staticmethod
    def upsert_profile(db: Session, user_id: str, background_context: Optional[str]) -> UserProfile:
        """Insert or replace the caller's background context. Blank text clears it."""
        text = (background_context or "").strip() or None

        profile = ProfileService.get_profile(db, user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id, background_context=text)
            db.add(profile)
        else:
            profile.background_context = text

        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def get_background_contexts(db: Session, user_ids: Iterable[str]) -> Dict[str, str]:
        """Non-blank background context keyed by user id."""
        ids = list(user_ids)
        if not ids:
            return {}

        profiles = db.query(UserProfile).filter(UserProfile.user_id.in_(ids)).all()
        return {
            profile.user_id: profile.background_context.strip()
            for profile in profiles
            if profile.background_context and profile.background_context.strip()
        }


class ReadMarkerService:
    """Service class for read markers and unread counts."""

    @staticmethod
    def mark_read(db: Session, user_id: str, thread_id: UUID) -> ReadMarker:
        """Upsert the (user, thread) marker to now."""
        marker = db.query(ReadMarker).filter(
            ReadMarker.user_id == user_id,
            ReadMarker.thread_id == thread_id
        ).first()

        if marker is None:
            marker = ReadMarker(user_id=user_id, thread_id=thread_id, last_read_at=utc_now())
            db.add(marker)
        else:
            marker.last_read_at = utc_now()

        db.commit()
        db.refresh(marker)
        return marker

    @staticmethod
    def unread_count(db: Session, user_id: str, thread_id: UUID) -> int:
        """Messages by anyone else since the user last read the thread."""
        query = db.query(func.count(Message.id)).filter(
            Message.thread_id == thread_id,
            Message.user_id != user_id
        )

        marker = db.query(ReadMarker).filter(
            ReadMarker.user_id == user_id,
            ReadMarker.thread_id == thread_id
        ).first()
        if marker is not None:
            query = query.filter(Message.created_at > marker.last_read_at)

        return query.scalar() or 0
