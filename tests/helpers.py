import json
from datetime import datetime, timedelta, timezone

from langchain_core.messages import AIMessageChunk

from models import Message, MessageRole, ASSISTANT_USER_ID

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedChatModel:
    """Stand-in chat model that streams fixed chunks, optionally failing at the end."""

    def __init__(self, chunks=(), error=None):
        self.chunks = list(chunks)
        self.error = error
        self.calls = []
        self.consumed = 0

    async def astream(self, messages):
        self.calls.append(messages)
        for chunk in self.chunks:
            self.consumed += 1
            yield AIMessageChunk(content=chunk)
        if self.error is not None:
            raise self.error


def parse_sse(body: str):
    events = []
    for frame in body.split("\n\n"):
        frame = frame.strip()
        if not frame.startswith("data: "):
            continue
        data = frame[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


def add_message(db, thread, user_id, user_name, content, minutes, role=MessageRole.USER):
    message = Message(
        thread_id=thread.id,
        user_id=user_id,
        user_name=user_name,
        content=content,
        role=role,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )
    db.add(message)
    db.commit()
    return message


def add_reply(db, thread, content, minutes):
    return add_message(db, thread, ASSISTANT_USER_ID, "Sol", content, minutes, role=MessageRole.ASSISTANT)
