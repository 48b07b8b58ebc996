"""Message model for thread history."""
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Enum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from .threads import Base, utc_now
import enum

# Reserved author id for every message the assistant writes.
ASSISTANT_USER_ID = "assistant"


class MessageRole(str, enum.Enum):
    """Enum for message author roles."""
    USER = "user"
    ASSISTANT = "assistant"


class Message(Base):
    """
    SQLAlchemy model for thread messages.

    The author's display name is copied in at write time and never
    re-derived. Content is immutable once persisted.
    """
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    thread_id = Column(UUID(as_uuid=True), ForeignKey("threads.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    user_name = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    role = Column(Enum(MessageRole), nullable=False, default=MessageRole.USER)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    thread = relationship("Thread", back_populates="messages")

    @property
    def is_assistant(self) -> bool:
        return self.role == MessageRole.ASSISTANT
