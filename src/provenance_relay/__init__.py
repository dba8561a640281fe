"""
Provenance Relay

Forwards provenance events to a downstream site-to-site input port in
transactional batches, resuming after restarts from a durable offset.

Usage:
    from provenance_relay import (
        ForwardingLoop, FileOffsetStore, HttpSiteToSiteClient, NdjsonEventSource,
    )

    with HttpSiteToSiteClient("https://host:8443/nifi-api", "Provenance Input") as client:
        loop = ForwardingLoop(NdjsonEventSource("events.ndjson"), client,
                              FileOffsetStore("./conf/relay.state"))
        result = loop.run_cycle()
"""

from .config import RelaySettings, get_settings
from .coordinator import (
    CycleOutcome,
    CycleResult,
    CycleState,
    ForwardingLoop,
    ForwardingScheduler,
    IntakeQueue,
)
from .errors import (
    BackpressureSignal,
    FetchError,
    QueueFullError,
    RelayError,
    SerializationError,
    StorageError,
    TransactionStateError,
    TransportError,
)
from .models import EventType, ProvenanceEvent, PushMessage
from .offsets import FileOffsetStore, MemoryOffsetStore, OffsetStore
from .serializer import EventSerializer
from .source import BatchFetcher, EventSource, MemoryEventSource, NdjsonEventSource
from .streaming import LongPollSubscription, QueueEventSource, StreamingSubscriber
from .transport import (
    HttpSiteToSiteClient,
    MemorySiteToSiteClient,
    SiteToSiteClient,
    Transaction,
    TransactionState,
)

__version__ = "0.1.0"
__all__ = [
    "RelaySettings",
    "get_settings",
    "CycleOutcome",
    "CycleResult",
    "CycleState",
    "ForwardingLoop",
    "ForwardingScheduler",
    "IntakeQueue",
    "BackpressureSignal",
    "FetchError",
    "QueueFullError",
    "RelayError",
    "SerializationError",
    "StorageError",
    "TransactionStateError",
    "TransportError",
    "EventType",
    "ProvenanceEvent",
    "PushMessage",
    "FileOffsetStore",
    "MemoryOffsetStore",
    "OffsetStore",
    "EventSerializer",
    "BatchFetcher",
    "EventSource",
    "MemoryEventSource",
    "NdjsonEventSource",
    "LongPollSubscription",
    "QueueEventSource",
    "StreamingSubscriber",
    "HttpSiteToSiteClient",
    "MemorySiteToSiteClient",
    "SiteToSiteClient",
    "Transaction",
    "TransactionState",
]
