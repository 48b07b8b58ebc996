"""System prompt composition for the group chat assistant."""
from dataclasses import dataclass
from typing import Optional, List, Tuple
import os
import re

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from models.messages import Message, MessageRole
from services.context import AggregatedContext

ASSISTANT_NAME = os.getenv("ASSISTANT_NAME", "Sol")

# Control tokens shared with the stream driver and with clients
NO_RESPONSE_SENTINEL = "[NO_RESPONSE]"
INTERPRETATION_TAG = "INTERPRETATION"

_INTERPRETATION_RE = re.compile(r"^\s*\[" + INTERPRETATION_TAG + r":\s*([^\]]*)\]\s*", re.DOTALL)


@dataclass(frozen=True)
class ComposedPrompt:
    system_instruction: str
    # (role, content) pairs: thread history then the new user message
    turns: Tuple[Tuple[str, str], ...]

    def to_messages(self) -> List[BaseMessage]:
        """Provider-ready messages, system instruction first."""
        messages: List[BaseMessage] = [SystemMessage(content=self.system_instruction)]
        for role, content in self.turns:
            if role == MessageRole.ASSISTANT.value:
                messages.append(AIMessage(content=content))
            else:
                messages.append(HumanMessage(content=content))
        return messages


def _persona(name: str) -> str:
    return f"""You are {name}, the one AI member of a group chat shared by several people.
You have a steady character: warm, plain-spoken, curious, and a little dry. You are
not a generic assistant waiting for commands; you are a participant who speaks when
you have something worth adding and keeps replies as short as the moment allows."""


_DELIBERATION = """Before you write anything, decide silently in two steps:
1. Classify the latest message: is it a question or request for you, a remark to the
   whole group, or something said to one specific person?
2. Commit to exactly one stance for your reply (answer, add to the discussion, or stay
   out of it) and write only in that stance."""

_PREAMBLE = f"""You may begin your reply with a one-sentence note on how you read the message,
written exactly as [{INTERPRETATION_TAG}: your reading] followed by a space and then the
reply itself. Use it only when the message is ambiguous."""


def _addressing(roster: List[str]) -> str:
    names = ", ".join(roster)
    return f"""The people in this conversation are: {names}.
If the latest message is clearly directed at one of them rather than at you or at the
group as a whole, reply with exactly {NO_RESPONSE_SENTINEL} and nothing else. It must be
the very first thing you write. Do not explain the choice."""


def render_transcript(history: List[Message]) -> str:
    lines = []
    for msg in history:
        if msg.is_assistant:
            lines.append(f"You: {msg.content}")
        else:
            lines.append(f"User: [{msg.user_name}] {msg.content}")
    return "\n".join(lines)


def render_background(background: List[Message]) -> str:
    return "\n".join(f"{msg.user_name}: {msg.content}" for msg in background)


def render_profile_notes(notes: List[Tuple[str, str]]) -> str:
    return "\n".join(f"- {name}: {text}" for name, text in notes)


def build_system_instruction(context: AggregatedContext, assistant_name: str = ASSISTANT_NAME) -> str:
    sections = [_persona(assistant_name), _DELIBERATION, _PREAMBLE]

    if len(context.roster) > 1:
        sections.append(_addressing(context.roster))

    transcript = render_transcript(context.history)
    sections.append(
        "Current conversation so far:\n" + (transcript if transcript else "(no earlier messages)")
    )

    if context.background:
        sections.append(
            "Background only: recent messages from other threads. They are secondary "
            "reference material; the current conversation always comes first.\n"
            + render_background(context.background)
        )

    if context.profile_notes:
        sections.append(
            "Background only: notes participants wrote about themselves. Use them for "
            "situational awareness, not as topics to raise.\n"
            + render_profile_notes(context.profile_notes)
        )

    return "\n\n".join(sections)


def compose_prompt(context: AggregatedContext, message: str, assistant_name: str = ASSISTANT_NAME) -> ComposedPrompt:
    """Deterministic prompt for one reply: same context in, same prompt out."""
    turns = tuple(
        (MessageRole.ASSISTANT.value if msg.is_assistant else MessageRole.USER.value, msg.content)
        for msg in context.history
    )
    return ComposedPrompt(
        system_instruction=build_system_instruction(context, assistant_name),
        turns=turns + ((MessageRole.USER.value, message),)
    )


def split_interpretation(text: str) -> Tuple[Optional[str], str]:
    """Separate a leading [INTERPRETATION: ...] note from the reply body."""
    match = _INTERPRETATION_RE.match(text)
    if not match:
        return None, text
    return match.group(1).strip(), text[match.end():]
