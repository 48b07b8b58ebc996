"""Persistence sink for finished assistant replies."""
from typing import Any, Callable, Dict, Optional
from uuid import UUID, uuid4
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging
import os

from services.messages import MessageService
from services.prompts import ASSISTANT_NAME
from services.realtime import MessageBroadcaster, message_payload
from services.streaming import StreamState

logger = logging.getLogger(__name__)

REPLY_SAVE_ATTEMPTS = int(os.getenv("REPLY_SAVE_ATTEMPTS", "2"))


class PersistenceSink:
    """
    Turns a completed stream into one durable assistant message.

    Uses its own sessions: the request that started the reply may be gone
    by the time the provider stream ends.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        broadcaster: Optional[MessageBroadcaster] = None,
        assistant_name: str = ASSISTANT_NAME,
        attempts: int = REPLY_SAVE_ATTEMPTS
    ):
        self.session_factory = session_factory
        self.broadcaster = broadcaster
        self.assistant_name = assistant_name
        self.attempts = max(1, attempts)

    def finalize(self, thread_id: UUID, state: StreamState, content: str) -> Optional[Dict[str, Any]]:
        """
        Write the reply if the stream completed with text.

        Returns an error event for the client when the reply could not be
        saved, otherwise None.
        """
        if state != StreamState.COMPLETED or not content.strip():
            logger.info(f"No assistant message stored for thread {thread_id} ({state.value})")
            return None

        # Fixed id so a retry can tell whether an earlier attempt already committed
        message_id = uuid4()
        last_error = None
        for attempt in range(1, self.attempts + 1):
            db = self.session_factory()
            try:
                message = MessageService.get_message(db, message_id) if attempt > 1 else None
                if message is None:
                    message = MessageService.insert_assistant_message(
                        db, thread_id, self.assistant_name, content, message_id=message_id
                    )
                if self.broadcaster is not None:
                    self.broadcaster.publish(thread_id, message_payload(message))
                logger.info(f"Stored assistant message {message.id} in thread {thread_id}")
                return None
            except SQLAlchemyError as e:
                db.rollback()
                last_error = e
                logger.warning(f"Saving assistant reply failed (attempt {attempt}/{self.attempts}): {e}")
            finally:
                db.close()

        logger.error(f"Assistant reply for thread {thread_id} was not saved: {last_error}")
        return {"error": "The reply could not be saved and will disappear on reload.", "details": str(last_error)}
