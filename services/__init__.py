from .threads import ThreadService, SpaceService
from .auth import AuthService
from .messages import MessageService, ProfileService, ReadMarkerService
from .context import ContextService, ContextUnavailableError
from .realtime import MessageBroadcaster
from .streaming import ReplyRunner
from .persistence import PersistenceSink

__all__ = ["ThreadService", "SpaceService", "AuthService", "MessageService", "ProfileService",
           "ReadMarkerService", "ContextService", "ContextUnavailableError", "MessageBroadcaster",
           "ReplyRunner", "PersistenceSink"]
