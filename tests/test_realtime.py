import asyncio

from services.realtime import MessageBroadcaster
from utils import create_message_feed, create_sse_stream, format_sse
from services.streaming import STREAM_DONE


def test_publish_reaches_thread_subscribers_only():
    broadcaster = MessageBroadcaster()

    async def scenario():
        async with broadcaster.subscribe("thread-a") as queue_a, broadcaster.subscribe("thread-b") as queue_b:
            delivered = broadcaster.publish("thread-a", {"content": "hi"})
            return delivered, queue_a.get_nowait(), queue_b.empty()

    delivered, payload, b_empty = asyncio.run(scenario())

    assert delivered == 1
    assert payload == {"content": "hi"}
    assert b_empty
    assert broadcaster.subscriber_count("thread-a") == 0


def test_publish_without_subscribers():
    assert MessageBroadcaster().publish("thread-a", {"content": "hi"}) == 0


def test_message_feed_frames():
    broadcaster = MessageBroadcaster()

    async def scenario():
        feed = create_message_feed(broadcaster, "thread-a")
        first = asyncio.ensure_future(feed.__anext__())
        while broadcaster.subscriber_count("thread-a") == 0:
            await asyncio.sleep(0)
        broadcaster.publish("thread-a", {"content": "hi"})
        frame = await first
        await feed.aclose()
        return frame

    assert asyncio.run(scenario()) == format_sse({"message": {"content": "hi"}})
    assert broadcaster.subscriber_count("thread-a") == 0


def test_sse_stream_ends_with_done():
    async def scenario():
        queue = asyncio.Queue()
        queue.put_nowait({"content": "a"})
        queue.put_nowait({"no_response": True})
        queue.put_nowait(STREAM_DONE)
        return [frame async for frame in create_sse_stream(queue)]

    assert asyncio.run(scenario()) == [
        'data: {"content": "a"}\n\n',
        'data: {"no_response": true}\n\n',
        "data: [DONE]\n\n",
    ]


def test_publish_from_worker_thread_reaches_subscriber():
    broadcaster = MessageBroadcaster()

    async def scenario():
        async with broadcaster.subscribe("thread-a") as queue:
            delivered = await asyncio.to_thread(broadcaster.publish, "thread-a", {"content": "from a thread"})
            payload = await asyncio.wait_for(queue.get(), timeout=1)
            return delivered, payload

    assert asyncio.run(scenario()) == (1, {"content": "from a thread"})
