"""Pydantic schemas for messages, profiles and read markers."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from uuid import UUID

from models.messages import MessageRole


class MessageCreate(BaseModel):
    """Schema for posting a user message."""
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value.strip()


class MessageResponse(BaseModel):
    """Schema for message responses."""
    id: UUID
    thread_id: UUID
    user_id: str
    user_name: str
    content: str
    role: MessageRole
    created_at: datetime
    # Split out of assistant replies that open with an interpretation tag
    interpretation: Optional[str] = None
    body: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    """Schema for upserting the caller's background context."""
    background_context: Optional[str] = Field(default=None, max_length=10000)


class ProfileResponse(BaseModel):
    """Schema for profile responses."""
    user_id: str
    background_context: Optional[str]


class ReadMarkerResponse(BaseModel):
    """Schema for read marker responses."""
    user_id: str
    thread_id: UUID
    last_read_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    """Schema for a thread's unread count."""
    thread_id: UUID
    unread: int
