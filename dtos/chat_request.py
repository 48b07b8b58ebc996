from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID

class ChatRequest(BaseModel):
    thread_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    user_id: Optional[str] = Field(default=None, description="Must match the authenticated user when given")
    user_name: Optional[str] = Field(default=None, description="Fallback roster name for the invoking user")
    message_id: Optional[UUID] = Field(default=None, description="Id of the user message if it is already persisted")
    context_window: Optional[int] = Field(default=None, ge=0, le=200, description="Number of cross-thread messages to include")

    @field_validator("thread_id", "message")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()
