"""Server-sent event framing for reply streams."""
from typing import Any, AsyncIterator, Dict
import asyncio
import json

from services.streaming import STREAM_DONE

DONE_FRAME = "data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


async def create_sse_stream(queue: asyncio.Queue) -> AsyncIterator[str]:
    """Relay reply events from a runner queue until the stream is done."""
    while True:
        event = await queue.get()
        if event is STREAM_DONE:
            yield DONE_FRAME
            return
        yield format_sse(event)


async def create_message_feed(broadcaster, thread_id) -> AsyncIterator[str]:
    """Relay stored messages of one thread to a realtime subscriber."""
    async with broadcaster.subscribe(thread_id) as queue:
        while True:
            payload = await queue.get()
            yield format_sse({"message": payload})
