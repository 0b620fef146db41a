"""Unit tests for event sinks and the fan-out broadcaster."""

import asyncio

import pytest

from src.event_sink import CallbackEventSink, EventBroadcaster
from src.models import ActivityLineEvent, AgentStatus, StatusEvent


def test_callback_sink_routes_by_kind():
    statuses, lines = [], []
    sink = CallbackEventSink(statuses.append, lines.append)

    sink.publish_status(StatusEvent("s1", AgentStatus.THINKING))
    sink.publish_line(ActivityLineEvent("s1", "● Analyzing request..."))

    assert statuses == [StatusEvent("s1", AgentStatus.THINKING)]
    assert lines == [ActivityLineEvent("s1", "● Analyzing request...")]


@pytest.mark.asyncio
async def test_broadcaster_fans_out_in_order():
    broadcaster = EventBroadcaster()
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()

    events = [
        StatusEvent("s1", AgentStatus.STARTING),
        ActivityLineEvent("s1", "● Starting Claude agent..."),
        StatusEvent("s1", AgentStatus.THINKING),
    ]
    broadcaster.publish_status(events[0])
    broadcaster.publish_line(events[1])
    broadcaster.publish_status(events[2])

    for subscription in (first, second):
        received = [await subscription.get(timeout=1) for _ in events]
        assert received == events


@pytest.mark.asyncio
async def test_broadcaster_filters_by_session():
    broadcaster = EventBroadcaster()
    only_b = broadcaster.subscribe("b")

    broadcaster.publish_line(ActivityLineEvent("a", "from a"))
    broadcaster.publish_line(ActivityLineEvent("b", "from b"))

    assert await only_b.get(timeout=1) == ActivityLineEvent("b", "from b")
    with pytest.raises(asyncio.TimeoutError):
        await only_b.get(timeout=0.05)


@pytest.mark.asyncio
async def test_close_ends_iteration_and_unsubscribes():
    broadcaster = EventBroadcaster()
    subscription = broadcaster.subscribe()
    assert broadcaster.subscriber_count == 1

    broadcaster.publish_line(ActivityLineEvent("s1", "one"))
    subscription.close()
    subscription.close()

    received = [event async for event in subscription]
    assert received == [ActivityLineEvent("s1", "one")]
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_context_manager_and_close_all():
    broadcaster = EventBroadcaster()
    async with broadcaster.subscribe() as subscription:
        assert not subscription.closed
    assert subscription.closed

    other = broadcaster.subscribe()
    broadcaster.close_all()
    assert other.closed
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_lagging_subscriber_is_closed_after_backlog():
    broadcaster = EventBroadcaster(queue_size=3)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe()

    for i in range(3):
        broadcaster.publish_line(ActivityLineEvent("s1", f"line {i}"))
        assert await fast.get(timeout=1) == ActivityLineEvent("s1", f"line {i}")
    assert not slow.closed

    broadcaster.publish_line(ActivityLineEvent("s1", "line 3"))

    assert slow.closed
    assert broadcaster.subscriber_count == 1
    assert await fast.get(timeout=1) == ActivityLineEvent("s1", "line 3")

    # The backlog is still readable, then the stream ends
    received = [event.line async for event in slow]
    assert received == ["line 0", "line 1", "line 2"]
    assert await slow.get(timeout=1) is None

    broadcaster.publish_line(ActivityLineEvent("s1", "line 4"))
    assert slow._queue.qsize() == 0


@pytest.mark.asyncio
async def test_queue_never_grows_past_its_bound():
    broadcaster = EventBroadcaster(queue_size=100)
    subscription = broadcaster.subscribe()

    for i in range(10_000):
        broadcaster.publish_line(ActivityLineEvent("s1", str(i)))

    assert subscription._queue.qsize() == 100
    assert subscription.closed
