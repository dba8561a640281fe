"""
Event sources and the batch fetcher that reads from them.

A source hands back events at or after a given id. The fetcher checks that the
answer is usable (ordered, in range, bounded) so the forwarding loop can trust
it.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence, Union, runtime_checkable

from loguru import logger
from pydantic import ValidationError

from .errors import FetchError
from .models import ProvenanceEvent


@runtime_checkable
class EventSource(Protocol):
    """Anything that can return the events starting at ``after_id``."""

    def fetch_events(self, after_id: int, max_count: int) -> List[ProvenanceEvent]: ...


class BatchFetcher:
    """Pulls the next bounded, ordered batch from a source."""

    def __init__(self, source: EventSource):
        self._source = source

    @property
    def source(self) -> EventSource:
        return self._source

    def fetch(self, after: int, limit: int) -> List[ProvenanceEvent]:
        if limit <= 0:
            raise ValueError("limit must be > 0")

        try:
            events = self._source.fetch_events(after, limit)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Failed to retrieve events from source: {e}") from e

        if not events:
            return []

        batch = list(events)
        _check_batch(batch, after)
        if len(batch) > limit:
            logger.debug(f"Source returned {len(batch)} events for limit {limit}; truncating")
            batch = batch[:limit]
        return batch


def _check_batch(batch: Sequence[ProvenanceEvent], after: int) -> None:
    previous = None
    for event in batch:
        if event.event_id < after:
            raise FetchError(f"Source returned event {event.event_id} before requested id {after}")
        if previous is not None and event.event_id <= previous:
            raise FetchError(f"Source returned events out of order: {previous} then {event.event_id}")
        previous = event.event_id


class MemoryEventSource:
    """In-process event log; producers may append from other threads."""

    def __init__(self, events: Iterable[ProvenanceEvent] = ()):
        self._events: List[ProvenanceEvent] = sorted(events, key=lambda e: e.event_id)
        self._lock = threading.Lock()

    def append(self, event: ProvenanceEvent) -> None:
        with self._lock:
            if self._events and event.event_id <= self._events[-1].event_id:
                raise ValueError(
                    f"event_id {event.event_id} must exceed {self._events[-1].event_id}"
                )
            self._events.append(event)

    def fetch_events(self, after_id: int, max_count: int) -> List[ProvenanceEvent]:
        with self._lock:
            return [e for e in self._events if e.event_id >= after_id][:max_count]

    def __len__(self) -> int:
        return len(self._events)


class NdjsonEventSource:
    """Events stored one JSON object per line, in event_id order."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    def fetch_events(self, after_id: int, max_count: int) -> List[ProvenanceEvent]:
        if not self._path.exists():
            return []

        out: List[ProvenanceEvent] = []
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, start=1):
                    if not line.strip():
                        continue
                    event = _parse_line(line, self._path, lineno)
                    if event.event_id < after_id:
                        continue
                    out.append(event)
                    if len(out) >= max_count:
                        break
        except OSError as e:
            raise FetchError(f"Failed to read {self._path}: {e}") from e
        return out


def _parse_line(line: str, path: Path, lineno: int) -> ProvenanceEvent:
    try:
        return ProvenanceEvent.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValidationError) as e:
        raise FetchError(f"Malformed event at {path}:{lineno}: {e}") from e
