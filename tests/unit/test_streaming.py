"""
Tests for push-mode intake: subscriber parsing, long polling and the
queue-backed event source.
"""

import json

import httpx
import pytest

from provenance_relay.coordinator import CycleOutcome, ForwardingLoop, IntakeQueue
from provenance_relay.models import PushMessage
from provenance_relay.offsets import MemoryOffsetStore
from provenance_relay.streaming import (
    LongPollSubscription,
    QueueEventSource,
    StreamingSubscriber,
    message_to_event,
)
from provenance_relay.transport import MemorySiteToSiteClient


def test_subscriber_parses_and_enqueues():
    queue = IntakeQueue(capacity=10)
    sub = StreamingSubscriber(queue, "/topic/orders")
    sub('{"id": 1}')
    sub(b'{"id": 2}')
    sub({"id": 3})

    items = queue.drain(10)
    assert [m.data["id"] for m in items] == [1, 2, 3]
    assert all(m.channel == "/topic/orders" for m in items)
    assert sub.received == 3


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "42"])
def test_subscriber_drops_bad_messages(raw):
    queue = IntakeQueue(capacity=10)
    sub = StreamingSubscriber(queue, "/topic/orders")
    sub(raw)
    assert queue.size == 0
    assert sub.rejected == 1


def test_message_to_event():
    msg = PushMessage(channel="/topic/x", received_millis=1_700_000_000_000, data={"b": 2, "a": 1})
    event = message_to_event(msg, 42)
    assert event.event_id == 42
    assert event.event_type == "RECEIVE"
    assert event.event_time == 1_700_000_000_000
    assert event.details == '{"a":1,"b":2}'
    assert event.component_name == "/topic/x"
    assert event.flowfile_uuid


def test_queue_source_keeps_pending_until_acknowledged():
    queue = IntakeQueue(capacity=10)
    for i in range(3):
        queue.enqueue(PushMessage(channel="c", received_millis=i, data={"n": i}))
    source = QueueEventSource(queue)

    first = source.fetch_events(0, 10)
    assert [e.event_id for e in first] == [0, 1, 2]
    assert queue.size == 0

    # same offset again (failed cycle): same events come back
    again = source.fetch_events(0, 10)
    assert again == first

    queue.enqueue(PushMessage(channel="c", received_millis=9, data={"n": 3}))
    later = source.fetch_events(3, 10)
    assert [e.event_id for e in later] == [3]
    assert json.loads(later[0].details) == {"n": 3}
    assert source.pending == 1


def test_queue_source_starts_at_requested_offset(event_factory):
    queue = IntakeQueue(capacity=10)
    queue.enqueue(event_factory(999))
    events = QueueEventSource(queue).fetch_events(57, 10)
    assert [e.event_id for e in events] == [57]
    assert events[0].flowfile_uuid == "ff-999"


def test_queue_source_respects_max_count():
    queue = IntakeQueue(capacity=10)
    for i in range(5):
        queue.enqueue({"n": i})
    source = QueueEventSource(queue)
    assert len(source.fetch_events(0, 2)) == 2
    assert queue.size == 3
    assert [e.event_id for e in source.fetch_events(2, 2)] == [2, 3]


def test_push_mode_at_least_once():
    """A failed send re-delivers the same drained messages on the next tick."""
    queue = IntakeQueue(capacity=10)
    sub = StreamingSubscriber(queue, "/topic/events")
    for i in range(3):
        sub({"n": i})

    client = MemorySiteToSiteClient()
    client.penalized = True
    store = MemoryOffsetStore()
    loop = ForwardingLoop(QueueEventSource(queue), client, store)

    assert loop.run_cycle().outcome == CycleOutcome.BACKPRESSURE
    client.penalized = False
    result = loop.run_cycle()
    assert result.outcome == CycleOutcome.DELIVERED
    assert result.events == 3
    assert store.load() == 3

    payload = json.loads(client.deliveries[0].packets[0][0])
    assert [json.loads(o["details"])["n"] for o in payload] == [0, 1, 2]
    assert loop.run_cycle().outcome == CycleOutcome.EMPTY


def test_long_poll_delivers_messages():
    seen_params = []

    def handler(request):
        seen_params.append(dict(request.url.params))
        if len(seen_params) == 1:
            return httpx.Response(200, json=[{"a": 1}, {"a": 2}])
        return httpx.Response(204)

    got = []
    sub = LongPollSubscription(
        "http://stream.test/poll", "/topic/t", got.append, poll_timeout=5,
        transport=httpx.MockTransport(handler),
    )
    try:
        assert sub.poll_once() == 2
        assert sub.poll_once() == 0
    finally:
        sub.stop()

    assert got == [{"a": 1}, {"a": 2}]
    assert seen_params[0] == {"channel": "/topic/t", "timeout": "5"}
    assert sub.polls == 2


def test_long_poll_http_error_raises():
    sub = LongPollSubscription(
        "http://stream.test/poll", "/topic/t", lambda m: None,
        transport=httpx.MockTransport(lambda r: httpx.Response(500)),
    )
    try:
        with pytest.raises(httpx.HTTPStatusError):
            sub.poll_once()
    finally:
        sub.stop()
