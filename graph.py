from typing import TypedDict, Optional
from uuid import UUID
from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, START, END
import logging

from services.context import AggregatedContext, ContextService, BACKGROUND_CONTEXT_LIMIT
from services.prompts import ComposedPrompt, compose_prompt

logger = logging.getLogger(__name__)


class State(TypedDict, total=False):
    thread_id: UUID
    user_id: str
    user_name: Optional[str]
    user_message: str
    exclude_message_id: Optional[UUID]
    background_limit: int
    context: AggregatedContext
    prompt: ComposedPrompt


def gather_context(state: State, config: RunnableConfig):
    """Read thread history, background messages and profile notes."""
    db = config["configurable"]["db"]

    context = ContextService.aggregate(
        db,
        thread_id=state["thread_id"],
        user_id=state["user_id"],
        user_name=state.get("user_name"),
        background_limit=state.get("background_limit", BACKGROUND_CONTEXT_LIMIT),
        exclude_message_id=state.get("exclude_message_id")
    )
    return {"context": context}


def compose(state: State):
    """Render the system instruction and conversation turns."""
    prompt = compose_prompt(state["context"], state["user_message"])
    logger.info(f"Composed prompt with {len(prompt.turns)} turns")
    return {"prompt": prompt}


# Reads happen-before composition; the completion itself is streamed outside the graph
s_graph = (
    StateGraph(State)
    .add_node("gather_context", gather_context)
    .add_node("compose_prompt", compose)
    .add_edge(START, "gather_context")
    .add_edge("gather_context", "compose_prompt")
    .add_edge("compose_prompt", END)
)
