"""Space and thread models for conversation management."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from uuid import uuid4

Base = declarative_base()

DEFAULT_THREAD_TITLE = "New Chat"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Space(Base):
    """
    SQLAlchemy model for spaces.

    A space is an optional grouping of threads shared by every user.
    """
    __tablename__ = "spaces"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    name = Column(String(255), nullable=False)
    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    threads = relationship("Thread", back_populates="space")


class Thread(Base):
    """
    SQLAlchemy model for conversation threads.

    A thread holds the ordered messages exchanged between several users
    and the assistant. Its title stays at the placeholder until the first
    user message renames it.
    """
    __tablename__ = "threads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    space_id = Column(UUID(as_uuid=True), ForeignKey("spaces.id"), nullable=True, index=True)
    created_by = Column(String, nullable=False, index=True)
    title = Column(String(255), nullable=True, default=DEFAULT_THREAD_TITLE)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    space = relationship("Space", back_populates="threads")
    messages = relationship("Message", back_populates="thread", order_by="Message.created_at")
