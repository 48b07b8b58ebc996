"""Pydantic schemas for space and thread requests and responses."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID

from models.threads import DEFAULT_THREAD_TITLE


class SpaceCreate(BaseModel):
    """Schema for creating a space."""
    name: str = Field(..., min_length=1, max_length=255)


class SpaceResponse(BaseModel):
    """Schema for space responses."""
    id: UUID
    name: str
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ThreadCreate(BaseModel):
    """Schema for creating a thread."""
    title: Optional[str] = Field(default=DEFAULT_THREAD_TITLE, max_length=255)
    space_id: Optional[UUID] = None


class ThreadUpdate(BaseModel):
    """Schema for an explicit thread rename."""
    title: str = Field(..., min_length=1, max_length=255)


class ThreadResponse(BaseModel):
    """Schema for thread responses."""
    id: UUID
    space_id: Optional[UUID]
    created_by: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
