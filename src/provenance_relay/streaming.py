"""
Push-mode intake: a streaming subscription feeding the intake queue, and a
source that lets the forwarding loop drain that queue like any other source.

    LongPollSubscription --(thread)--> StreamingSubscriber --> IntakeQueue
                                                                  |
    ForwardingLoop <-- BatchFetcher <-- QueueEventSource <--------+
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import httpx
from loguru import logger

from .coordinator.queue import IntakeQueue
from .models import EventType, ProvenanceEvent, PushMessage
from .utils import generate_id, now_millis

RawMessage = Union[str, bytes, Mapping[str, Any]]
MessageListener = Callable[[RawMessage], None]

STREAM_COMPONENT_TYPE = "StreamingSubscription"


class StreamingSubscriber:
    """Message listener that parses pushed JSON and enqueues it.

    Runs on the subscription's I/O thread. Unparsable messages are logged and
    dropped; enqueue follows the queue's overflow policy (blocking by default).
    """

    def __init__(self, queue: IntakeQueue, channel: str):
        self._queue = queue
        self._channel = channel
        self.received = 0
        self.rejected = 0

    @property
    def channel(self) -> str:
        return self._channel

    def __call__(self, message: RawMessage) -> None:
        data = self._parse(message)
        if data is None:
            self.rejected += 1
            return
        self.received += 1
        logger.debug(f"Message on {self._channel}: {data}")
        self._queue.enqueue(
            PushMessage(channel=self._channel, received_millis=now_millis(), data=data)
        )

    def _parse(self, message: RawMessage) -> Optional[Dict[str, Any]]:
        if isinstance(message, Mapping):
            return dict(message)
        try:
            data = json.loads(message)
        except (ValueError, TypeError) as e:
            logger.error(f"Dropping unparsable message on {self._channel}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Dropping non-object message on {self._channel}: {type(data).__name__}")
            return None
        return data


class LongPollSubscription:
    """Background long-poll loop against a JSON streaming endpoint.

    Each ``GET {url}?channel=...`` blocks server-side for up to
    ``poll_timeout`` seconds and returns a JSON array of messages (or 204 when
    nothing arrived). Messages go to ``listener`` in the order received.
    """

    def __init__(
        self,
        url: str,
        channel: str,
        listener: MessageListener,
        *,
        poll_timeout: float = 30.0,
        retry_delay: float = 5.0,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._url = url
        self._channel = channel
        self._listener = listener
        self._poll_timeout = poll_timeout
        self._retry_delay = retry_delay
        self._client = httpx.Client(
            headers=dict(headers or {}),
            # read timeout must outlast the server-side hold
            timeout=httpx.Timeout(poll_timeout + 10.0, connect=10.0),
            transport=transport,
        )
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.polls = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"long-poll-{self._channel}", daemon=True
        )
        self._thread.start()
        logger.info(f"Subscribed to {self._channel} at {self._url}")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._client.close()
        logger.info(f"Subscription to {self._channel} stopped")

    def poll_once(self) -> int:
        """Issue one long-poll request; returns the number of messages delivered."""
        resp = self._client.get(
            self._url, params={"channel": self._channel, "timeout": int(self._poll_timeout)}
        )
        self.polls += 1
        if resp.status_code == 204:
            return 0
        resp.raise_for_status()
        messages = resp.json()
        if not isinstance(messages, list):
            messages = [messages]
        for message in messages:
            if self._stop.is_set():
                break
            self._listener(message)
        return len(messages)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except (httpx.HTTPError, ValueError) as e:
                if self._stop.is_set():
                    return
                logger.warning(
                    f"Long poll on {self._channel} failed ({type(e).__name__}: {e}); "
                    f"retrying in {self._retry_delay:.1f}s"
                )
                self._stop.wait(self._retry_delay)


def message_to_event(message: PushMessage, event_id: int) -> ProvenanceEvent:
    """Default conversion of a pushed message into a forwardable event."""
    return ProvenanceEvent(
        event_id=event_id,
        event_type=EventType.RECEIVE,
        event_time=message.received_millis,
        details=json.dumps(message.data, separators=(",", ":"), sort_keys=True),
        component_type=STREAM_COMPONENT_TYPE,
        component_name=message.channel,
        flowfile_uuid=generate_id(),
        transit_uri=message.channel,
    )


class QueueEventSource:
    """EventSource backed by an intake queue.

    Drained messages get consecutive event ids, starting at the first offset the
    loop asks for. They stay pending until a later fetch asks for an id past
    them, which happens only after their transaction completed and the offset
    was saved. A failed cycle therefore gets the same events back.
    """

    def __init__(
        self,
        queue: IntakeQueue,
        converter: Callable[[PushMessage, int], ProvenanceEvent] = message_to_event,
    ):
        self._queue = queue
        self._convert = converter
        self._pending: List[ProvenanceEvent] = []
        self._next_id: Optional[int] = None

    @property
    def pending(self) -> int:
        return len(self._pending)

    def fetch_events(self, after_id: int, max_count: int) -> List[ProvenanceEvent]:
        self._pending = [e for e in self._pending if e.event_id >= after_id]
        if self._next_id is None or self._next_id < after_id:
            self._next_id = after_id

        room = max_count - len(self._pending)
        if room > 0:
            for item in self._queue.drain(room):
                self._pending.append(self._sequence(item))
        return list(self._pending[:max_count])

    def _sequence(self, item: Any) -> ProvenanceEvent:
        event_id = self._next_id
        self._next_id += 1
        if isinstance(item, ProvenanceEvent):
            return item.model_copy(update={"event_id": event_id})
        if isinstance(item, PushMessage):
            return self._convert(item, event_id)
        return self._convert(
            PushMessage(channel="unknown", received_millis=now_millis(), data={"value": item}),
            event_id,
        )
