"""Completion stream driver: provider token stream in, normalized events out."""
from typing import Any, AsyncIterator, Dict, List, Optional, Set
from uuid import UUID
import asyncio
import enum
import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage

from services.prompts import ComposedPrompt, NO_RESPONSE_SENTINEL

logger = logging.getLogger(__name__)

# Queue marker closing every reply stream
STREAM_DONE = object()


class StreamState(str, enum.Enum):
    ACCUMULATING = "accumulating"
    STREAMING = "streaming"
    SUPPRESSED = "suppressed"
    COMPLETED = "completed"
    FAILED = "failed"


class SentinelGate:
    """
    Withholds the start of a reply until it cannot be the no-response sentinel.

    Leading whitespace is set aside as it arrives and the unresolved prefix
    never grows past the sentinel length. Once the prefix diverges every
    delta passes straight through.
    """

    def __init__(self, sentinel: str = NO_RESPONSE_SENTINEL):
        self.sentinel = sentinel
        self.state = StreamState.ACCUMULATING
        self._leading: List[str] = []
        self._candidate = ""

    def _release(self, text: str) -> str:
        released = "".join(self._leading) + text
        self._leading = []
        self._candidate = ""
        return released

    def feed(self, delta: str) -> Optional[str]:
        """Return the text that may be forwarded now, if any."""
        if self.state == StreamState.STREAMING:
            return delta
        if self.state != StreamState.ACCUMULATING:
            return None

        if not self._candidate:
            stripped = delta.lstrip()
            if len(stripped) < len(delta):
                self._leading.append(delta[:len(delta) - len(stripped)])
            delta = stripped
            if not delta:
                return None

        candidate = self._candidate + delta
        if candidate.startswith(self.sentinel):
            self.state = StreamState.SUPPRESSED
            self._leading = []
            self._candidate = ""
            return None

        if self.sentinel.startswith(candidate):
            self._candidate = candidate
            return None

        self.state = StreamState.STREAMING
        return self._release(candidate)

    def finish(self) -> Optional[str]:
        """Close the gate at end of stream; returns any text still held back."""
        released = None
        if self.state == StreamState.ACCUMULATING and self._candidate:
            released = self._release(self._candidate)
        self._leading = []
        self._candidate = ""
        if self.state in (StreamState.ACCUMULATING, StreamState.STREAMING):
            self.state = StreamState.COMPLETED
        return released

    def fail(self) -> None:
        self._leading = []
        self._candidate = ""
        self.state = StreamState.FAILED


def chunk_text(chunk: Any) -> str:
    """Text delta carried by one provider chunk."""
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return ""


class CompletionStreamDriver:
    """
    Drives one streamed completion.

    Yields dict events carrying exactly one of ``content``, ``no_response``
    or ``error``. Provider failures become an error event instead of an
    exception; content already yielded stays valid.
    """

    def __init__(self, chat_model: BaseChatModel, sentinel: str = NO_RESPONSE_SENTINEL):
        self.chat_model = chat_model
        self.gate = SentinelGate(sentinel)
        self._parts: List[str] = []

    @property
    def state(self) -> StreamState:
        return self.gate.state

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def _forward(self, text: str) -> Dict[str, Any]:
        self._parts.append(text)
        return {"content": text}

    async def events(self, messages: List[BaseMessage]) -> AsyncIterator[Dict[str, Any]]:
        stream = self.chat_model.astream(messages)
        try:
            async for chunk in stream:
                delta = chunk_text(chunk)
                if not delta:
                    continue

                released = self.gate.feed(delta)
                if self.gate.state == StreamState.SUPPRESSED:
                    logger.info("Assistant declined to respond")
                    yield {"no_response": True}
                    return

                if released:
                    yield self._forward(released)

        except Exception as e:
            logger.error(f"Completion stream failed: {e}")
            self.gate.fail()
            yield {"error": "The assistant could not finish its reply.", "details": str(e)}
            return

        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        tail = self.gate.finish()
        if tail:
            yield self._forward(tail)


class ReplyRunner:
    """
    Runs each reply as a background task feeding a queue.

    A client that disconnects only stops reading the queue; the provider
    stream still runs to the end and the reply is still persisted.
    """

    def __init__(self, chat_model: BaseChatModel, sink):
        self.chat_model = chat_model
        self.sink = sink
        self._tasks: Set[asyncio.Task] = set()

    def start(self, thread_id: UUID, prompt: ComposedPrompt) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._run(thread_id, prompt, queue))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return queue

    async def _run(self, thread_id: UUID, prompt: ComposedPrompt, queue: asyncio.Queue) -> None:
        driver = CompletionStreamDriver(self.chat_model)
        try:
            async for event in driver.events(prompt.to_messages()):
                queue.put_nowait(event)

            # Blocking database writes stay off the event loop
            error = await asyncio.to_thread(self.sink.finalize, thread_id, driver.state, driver.content)
            if error is not None:
                queue.put_nowait(error)
        except Exception as e:
            logger.error(f"Reply for thread {thread_id} aborted: {e}")
            queue.put_nowait({"error": "The reply was interrupted.", "details": str(e)})
        finally:
            queue.put_nowait(STREAM_DONE)

    async def drain(self) -> None:
        """Wait for in-flight replies, used at shutdown."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
