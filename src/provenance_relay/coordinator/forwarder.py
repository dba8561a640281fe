"""
Forwarding loop: fetch -> serialize -> transact -> commit offset.

One call to ``run_cycle`` is one unit of work. Every failure is local to the
cycle and leaves the stored offset where it was, so the next tick re-fetches
and re-sends the same batch (at-least-once delivery).

The only exception to "offset untouched" is the commit step itself: once the
sink has completed the transaction the batch is delivered, and a failure to
persist the new offset is logged but not undone. After a restart that batch is
sent again.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Union

from loguru import logger

from ..errors import (
    BackpressureSignal,
    FetchError,
    SerializationError,
    StorageError,
    TransportError,
)
from ..metrics.registry import (
    RELAY_CYCLES_TOTAL,
    RELAY_CYCLE_LATENCY_SECONDS,
    RELAY_EVENTS_FORWARDED_TOTAL,
    RELAY_OFFSET,
)
from ..offsets import OffsetStore
from ..serializer import EventSerializer
from ..source import BatchFetcher, EventSource
from ..transport.types import SiteToSiteClient, Transaction
from ..utils import generate_id

DEFAULT_BATCH_SIZE = 1000
DEFAULT_TRANSACTION_ID_ATTRIBUTE = "relay.transaction.id"


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SERIALIZING = "serializing"
    TRANSACTING = "transacting"
    COMMITTING = "committing"
    ABORTED = "aborted"


class CycleOutcome(str, Enum):
    DELIVERED = "delivered"
    DELIVERED_UNCOMMITTED = "delivered_uncommitted"  # sent, offset save failed
    EMPTY = "empty"
    BACKPRESSURE = "backpressure"
    STORAGE_FAILED = "storage_failed"  # offset could not be loaded
    FETCH_FAILED = "fetch_failed"
    SERIALIZE_FAILED = "serialize_failed"
    TRANSPORT_FAILED = "transport_failed"


@dataclass(frozen=True)
class CycleResult:
    outcome: CycleOutcome
    state: CycleState
    events: int = 0
    offset_before: Optional[int] = None
    offset_after: Optional[int] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.outcome in (CycleOutcome.DELIVERED, CycleOutcome.DELIVERED_UNCOMMITTED)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["outcome"] = self.outcome.value
        d["state"] = self.state.value
        return d


class ForwardingLoop:
    """Moves batches from a source to a site-to-site sink, tracking the offset.

    Exactly one loop may own a given offset store and client at a time; the
    caller (the scheduler) guarantees that ticks never overlap.

    Args:
        source: a BatchFetcher, or any EventSource (wrapped in one)
        client: site-to-site client, built once and reused across cycles
        offsets: durable offset store
        serializer: wire encoder; a default EventSerializer when None
        batch_size: maximum events per transaction
        transaction_id_attribute: attribute carrying the per-send correlation id
        relay_id: label for logs and metrics
    """

    def __init__(
        self,
        source: Union[BatchFetcher, EventSource],
        client: SiteToSiteClient,
        offsets: OffsetStore,
        serializer: Optional[EventSerializer] = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        transaction_id_attribute: str = DEFAULT_TRANSACTION_ID_ATTRIBUTE,
        relay_id: str = "relay",
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")

        self._fetcher = source if isinstance(source, BatchFetcher) else BatchFetcher(source)
        self._client = client
        self._offsets = offsets
        self._serializer = serializer or EventSerializer()
        self._batch_size = batch_size
        self._tx_attr = transaction_id_attribute
        self._relay_id = relay_id

        self._state = CycleState.IDLE
        self._offset: Optional[int] = None
        self._loaded = False

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def offset(self) -> Optional[int]:
        """Next event id to fetch; None until the state file has been read."""
        return self._offset

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # --------------------------- public API

    def run_cycle(self) -> CycleResult:
        """Run one fetch/send/commit cycle. Never raises for cycle-local errors."""
        result = self._cycle()
        RELAY_CYCLES_TOTAL.labels(relay=self._relay_id, outcome=result.outcome.value).inc()
        return result

    # --------------------------- internals

    def _cycle(self) -> CycleResult:
        if not self._loaded:
            try:
                self._offset = self._offsets.load()
            except StorageError as e:
                logger.error(f"[{self._relay_id}] Failed to load offset: {e}; skipping this cycle")
                return self._abort(CycleOutcome.STORAGE_FAILED, None, error=e)
            self._loaded = True
            logger.info(f"[{self._relay_id}] Resuming from offset {self._offset}")
            if self._offset is not None:
                RELAY_OFFSET.labels(relay=self._relay_id).set(self._offset)

        after = self._offset if self._offset is not None else 0

        self._state = CycleState.FETCHING
        try:
            events = self._fetcher.fetch(after, self._batch_size)
        except FetchError as e:
            logger.error(f"[{self._relay_id}] Failed to retrieve events after {after}: {e}")
            return self._abort(CycleOutcome.FETCH_FAILED, after, error=e)

        if not events:
            logger.debug(f"[{self._relay_id}] No events to send")
            self._state = CycleState.IDLE
            return CycleResult(CycleOutcome.EMPTY, self._state, 0, after, after)

        start = time.perf_counter()

        self._state = CycleState.SERIALIZING
        try:
            data = self._serializer.serialize(events)
        except SerializationError as e:
            logger.error(f"[{self._relay_id}] Failed to serialize batch after {after}: {e}")
            return self._abort(CycleOutcome.SERIALIZE_FAILED, after, error=e)

        self._state = CycleState.TRANSACTING
        transaction_id = generate_id()
        try:
            transaction = self._client.create_transaction("send")
        except BackpressureSignal as e:
            transaction = None
            logger.debug(f"[{self._relay_id}] Remote signalled backpressure: {e}")
        except TransportError as e:
            logger.error(f"[{self._relay_id}] Failed to open transaction: {e}")
            return self._abort(CycleOutcome.TRANSPORT_FAILED, after, error=e)

        if transaction is None:
            logger.debug(f"[{self._relay_id}] All destination nodes are penalized; will send later")
            self._state = CycleState.IDLE
            return CycleResult(CycleOutcome.BACKPRESSURE, self._state, 0, after, after)

        attributes = {self._tx_attr: transaction_id, "mime.type": "application/json"}
        try:
            transaction.send(data, attributes)
            transaction.confirm()
            transaction.complete()
        except TransportError as e:
            self._cancel(transaction, str(e))
            logger.error(
                f"[{self._relay_id}] Failed to send {len(events)} events "
                f"(first={events[0].event_id}) in transaction {transaction_id}: {e}"
            )
            return self._abort(CycleOutcome.TRANSPORT_FAILED, after, transaction_id, e)

        elapsed = time.perf_counter() - start
        RELAY_EVENTS_FORWARDED_TOTAL.labels(relay=self._relay_id).inc(len(events))
        RELAY_CYCLE_LATENCY_SECONDS.labels(relay=self._relay_id).observe(elapsed)
        logger.info(
            f"[{self._relay_id}] Successfully sent {len(events)} events in {elapsed * 1000:.0f} ms; "
            f"transaction id = {transaction_id}; first event id = {events[0].event_id}"
        )

        self._state = CycleState.COMMITTING
        new_offset = events[-1].event_id + 1
        try:
            self._offsets.save(new_offset)
        except StorageError as e:
            logger.error(
                f"[{self._relay_id}] Failed to update offset to {new_offset}: {e}; "
                "these events may be sent again"
            )
            self._state = CycleState.IDLE
            return CycleResult(
                CycleOutcome.DELIVERED_UNCOMMITTED,
                self._state,
                len(events),
                after,
                after,
                transaction_id,
                str(e),
            )

        self._offset = new_offset
        RELAY_OFFSET.labels(relay=self._relay_id).set(new_offset)
        self._state = CycleState.IDLE
        return CycleResult(
            CycleOutcome.DELIVERED, self._state, len(events), after, new_offset, transaction_id
        )

    def _abort(
        self,
        outcome: CycleOutcome,
        offset: Optional[int],
        transaction_id: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> CycleResult:
        self._state = CycleState.ABORTED
        return CycleResult(
            outcome,
            self._state,
            0,
            offset,
            offset,
            transaction_id,
            str(error) if error is not None else None,
        )

    def _cancel(self, transaction: Transaction, reason: str) -> None:
        try:
            transaction.cancel(reason)
        except TransportError as e:
            logger.warning(f"[{self._relay_id}] Failed to cancel transaction: {e}")
