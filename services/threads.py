"""Space and thread services for CRUD operations."""
from typing import Optional, List
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import desc
import logging

from models.threads import Space, Thread, DEFAULT_THREAD_TITLE
from schemas.threads import ThreadCreate

logger = logging.getLogger(__name__)

DEFAULT_SPACE_NAME = "Default Space"
TITLE_MAX_LENGTH = 50


def derive_title(message: str) -> str:
    """Title for a thread named after its first message."""
    text = message.strip()
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text


class SpaceService:
    """Service class for space operations."""

    @staticmethod
    def create_space(db: Session, name: str, created_by: str) -> Space:
        """Create a new space."""
        space = Space(name=name.strip(), created_by=created_by)
        db.add(space)
        db.commit()
        db.refresh(space)
        return space

    @staticmethod
    def list_spaces(db: Session) -> List[Space]:
        """List every space, newest first."""
        return db.query(Space).order_by(desc(Space.created_at)).all()

    @staticmethod
    def get_space(db: Session, space_id: UUID) -> Optional[Space]:
        return db.query(Space).filter(Space.id == space_id).first()

    @staticmethod
    def get_or_create_default(db: Session, created_by: str) -> Space:
        """Newest space, or a fresh default one when none exist."""
        space = db.query(Space).order_by(desc(Space.created_at)).first()
        if space is None:
            space = SpaceService.create_space(db, DEFAULT_SPACE_NAME, created_by)
            logger.info(f"Created default space {space.id}")
        return space


class ThreadService:
    """Service class for thread CRUD operations."""

    @staticmethod
    def create_thread(db: Session, user_id: str, thread_data: ThreadCreate) -> Thread:
        """Create a new thread, filing it under a space."""
        space_id = thread_data.space_id
        if space_id is None:
            space_id = SpaceService.get_or_create_default(db, user_id).id

        db_thread = Thread(
            space_id=space_id,
            created_by=user_id,
            title=thread_data.title or DEFAULT_THREAD_TITLE
        )

        db.add(db_thread)
        db.commit()
        db.refresh(db_thread)

        return db_thread

    @staticmethod
    def get_thread(db: Session, thread_id: UUID) -> Optional[Thread]:
        """Retrieve a thread by ID."""
        return db.query(Thread).filter(Thread.id == thread_id).first()

    @staticmethod
    def list_threads(db: Session, space_id: Optional[UUID] = None, skip: int = 0, limit: int = 50) -> List[Thread]:
        """Retrieve threads, newest first, optionally within one space."""
        query = db.query(Thread)
        if space_id is not None:
            query = query.filter(Thread.space_id == space_id)

        return query.order_by(
            desc(Thread.created_at)
        ).offset(skip).limit(limit).all()

    @staticmethod
    def rename_thread(db: Session, thread: Thread, title: str) -> Thread:
        """Explicit rename by a user."""
        thread.title = title.strip()
        db.commit()
        db.refresh(thread)
        return thread

    @staticmethod
    def apply_auto_title(db: Session, thread: Thread, message: str) -> bool:
        """
        Name a thread after a user message while it still has no real title.

        Returns True when the title changed. Titles set explicitly are
        never touched.
        """
        if thread.title and thread.title != DEFAULT_THREAD_TITLE:
            return False

        title = derive_title(message)
        if not title:
            return False

        thread.title = title
        db.commit()
        return True
