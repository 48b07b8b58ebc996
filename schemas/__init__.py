from .threads import SpaceCreate, SpaceResponse, ThreadCreate, ThreadUpdate, ThreadResponse
from .messages import (
    MessageCreate, MessageResponse, ProfileUpdate, ProfileResponse,
    ReadMarkerResponse, UnreadCountResponse,
)
from .auth import UserCreate, UserResponse, Token, TokenPayload, Identity

__all__ = ["SpaceCreate", "SpaceResponse", "ThreadCreate", "ThreadUpdate", "ThreadResponse",
           "MessageCreate", "MessageResponse", "ProfileUpdate", "ProfileResponse",
           "ReadMarkerResponse", "UnreadCountResponse",
           "UserCreate", "UserResponse", "Token", "TokenPayload", "Identity"]
