"""User profile and read marker models."""
from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from .threads import Base, utc_now


class UserProfile(Base):
    """
    SQLAlchemy model for per-user background context.

    One row per external identity; only its owner upserts it.
    """
    __tablename__ = "user_profiles"

    user_id = Column(String, primary_key=True)
    background_context = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class ReadMarker(Base):
    """Last time a user read a thread."""
    __tablename__ = "read_markers"

    user_id = Column(String, primary_key=True)
    thread_id = Column(UUID(as_uuid=True), ForeignKey("threads.id"), primary_key=True)
    last_read_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
