from .threads import Base, Space, Thread, DEFAULT_THREAD_TITLE
from .messages import Message, MessageRole, ASSISTANT_USER_ID
from .profiles import UserProfile, ReadMarker
from .users import User

__all__ = ["Base", "Space", "Thread", "Message", "MessageRole", "UserProfile", "ReadMarker", "User",
           "DEFAULT_THREAD_TITLE", "ASSISTANT_USER_ID"]
