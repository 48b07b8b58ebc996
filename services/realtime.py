"""In-process publish/subscribe for newly stored messages."""
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict
from uuid import UUID
import asyncio
import logging

from models.messages import Message

logger = logging.getLogger(__name__)


def message_payload(message: Message) -> Dict[str, Any]:
    """JSON-ready view of a message for subscribers."""
    return {
        "id": str(message.id),
        "thread_id": str(message.thread_id),
        "user_id": message.user_id,
        "user_name": message.user_name,
        "content": message.content,
        "role": message.role.value,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


class MessageBroadcaster:
    """
    Fans message inserts out to every subscriber of a thread.

    Writers only publish; nothing in the reply path subscribes. Publishing
    is safe from worker threads: delivery is handed to the subscriber's
    own event loop.
    """

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._subscribers: Dict[str, Dict[asyncio.Queue, asyncio.AbstractEventLoop]] = defaultdict(dict)

    @staticmethod
    def _deliver(queue: asyncio.Queue, payload: Dict[str, Any], thread_id: UUID) -> None:
        try:
            queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning(f"Dropping message event for slow subscriber on thread {thread_id}")

    def publish(self, thread_id: UUID, payload: Dict[str, Any]) -> int:
        """Deliver to current subscribers; returns how many it was sent to."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        subscribers = list(self._subscribers.get(str(thread_id), {}).items())
        for queue, loop in subscribers:
            if loop is running:
                self._deliver(queue, payload, thread_id)
            else:
                loop.call_soon_threadsafe(self._deliver, queue, payload, thread_id)
        return len(subscribers)

    def subscriber_count(self, thread_id: UUID) -> int:
        return len(self._subscribers.get(str(thread_id), ()))

    @asynccontextmanager
    async def subscribe(self, thread_id: UUID) -> AsyncIterator[asyncio.Queue]:
        key = str(thread_id)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        self._subscribers[key][queue] = asyncio.get_running_loop()
        try:
            yield queue
        finally:
            self._subscribers[key].pop(queue, None)
            if not self._subscribers[key]:
                del self._subscribers[key]
