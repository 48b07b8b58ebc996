import asyncio

import pytest

from services.streaming import CompletionStreamDriver, SentinelGate, StreamState, chunk_text
from tests.helpers import ScriptedChatModel


def run_driver(chunks, error=None):
    model = ScriptedChatModel(chunks, error=error)
    driver = CompletionStreamDriver(model)

    async def collect():
        return [event async for event in driver.events([])]

    return driver, model, asyncio.run(collect())


def contents(events):
    return [event["content"] for event in events if "content" in event]


def test_sentinel_in_one_chunk_is_suppressed():
    driver, _, events = run_driver(["[NO_RESPONSE]"])

    assert events == [{"no_response": True}]
    assert driver.state == StreamState.SUPPRESSED
    assert driver.content == ""


def test_sentinel_split_across_chunks_is_suppressed():
    driver, _, events = run_driver(["[NO", "_RESPONSE]"])

    assert events == [{"no_response": True}]
    assert contents(events) == []


def test_sentinel_split_per_character():
    driver, _, events = run_driver(list("  [NO_RESPONSE]"))

    assert events == [{"no_response": True}]


def test_suppression_stops_consuming_the_provider():
    _, model, events = run_driver(["[NO_RESPONSE]", " but also", " more"])

    assert events == [{"no_response": True}]
    assert model.consumed == 1


@pytest.mark.parametrize("chunks", [
    ["Hello world"],
    ["Hel", "lo wo", "rld"],
    list("Hello world"),
])
def test_content_deltas_concatenate_exactly(chunks):
    driver, _, events = run_driver(chunks)

    assert "".join(contents(events)) == "Hello world"
    assert driver.content == "Hello world"
    assert driver.state == StreamState.COMPLETED


def test_deltas_after_divergence_are_forwarded_as_is():
    _, _, events = run_driver(["Hel", "lo wo", "rld"])

    assert contents(events) == ["Hel", "lo wo", "rld"]


def test_partial_sentinel_is_withheld_until_it_diverges():
    _, _, events = run_driver(["[NO", "TE] hi"])

    assert contents(events) == ["[NOTE] hi"]


def test_interpretation_preamble_is_plain_content():
    _, _, events = run_driver(["[INTERPRETATION: a question] ", "Yes."])

    assert "".join(contents(events)) == "[INTERPRETATION: a question] Yes."


def test_unfinished_sentinel_prefix_is_released_at_end():
    driver, _, events = run_driver(["[NO_RESP"])

    assert contents(events) == ["[NO_RESP"]
    assert driver.state == StreamState.COMPLETED


def test_empty_stream_completes_with_no_content():
    driver, _, events = run_driver([])

    assert events == []
    assert driver.state == StreamState.COMPLETED
    assert driver.content == ""


def test_whitespace_only_stream_completes_empty():
    driver, _, events = run_driver(["  ", "\n"])

    assert events == []
    assert driver.state == StreamState.COMPLETED
    assert driver.content == ""


def test_provider_failure_keeps_sent_content():
    driver, _, events = run_driver(["Partial ", "answer"], error=RuntimeError("connection reset"))

    assert contents(events) == ["Partial ", "answer"]
    assert events[-1]["error"]
    assert events[-1]["details"] == "connection reset"
    assert driver.state == StreamState.FAILED


def test_gate_lookahead_is_bounded():
    gate = SentinelGate("[NO_RESPONSE]")

    assert gate.feed("[NO_RESPONSE") is None
    assert gate.feed("X") == "[NO_RESPONSEX"
    assert gate.state == StreamState.STREAMING
    assert gate.feed("more") == "more"


def test_leading_whitespace_is_not_rescanned_and_is_kept_on_release():
    gate = SentinelGate("[NO_RESPONSE]")

    for _ in range(1000):
        assert gate.feed(" \n") is None
    assert gate.feed("[NO") is None
    assert gate._candidate == "[NO"

    assert gate.feed("TE]") == " \n" * 1000 + "[NOTE]"
    assert gate.state == StreamState.STREAMING


def test_whitespace_before_sentinel_is_suppressed():
    gate = SentinelGate("[NO_RESPONSE]")

    assert gate.feed("\n\n  ") is None
    assert gate.feed("  [NO_RES") is None
    assert gate.feed("PONSE]") is None
    assert gate.state == StreamState.SUPPRESSED
    assert gate.finish() is None


def test_chunk_text_handles_content_blocks():
    class Chunk:
        content = [{"type": "text", "text": "a"}, {"type": "tool_use"}, "b"]

    assert chunk_text(Chunk()) == "ab"
    assert chunk_text("raw") == "raw"
