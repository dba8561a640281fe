"""
Wire serializer: provenance events -> JSON array payload.

Fields are added one by one. A field whose value is None is left out of the
object entirely; an empty string is a real value and is written.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from .errors import SerializationError
from .models import ProvenanceEvent
from .utils import format_millis_utc, generate_id

ENTITY_TYPE = "org.apache.nifi.flowfile.FlowFile"
DEFAULT_PLATFORM = "nifi"

ComponentNameLookup = Callable[[ProvenanceEvent], Optional[str]]


def _add(obj: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        obj[key] = value


def _add_map(obj: Dict[str, Any], key: str, values: Optional[Mapping[str, Optional[str]]]) -> None:
    if values is None:
        return
    obj[key] = {k: v for k, v in values.items() if k is not None and v is not None}


def _add_list(obj: Dict[str, Any], key: str, values: Optional[Iterable[Optional[str]]]) -> None:
    if values is None:
        return
    obj[key] = [v for v in values if v is not None]


class EventSerializer:
    """Encodes events into the downstream JSON format.

    Args:
        nifi_url: URL of the originating instance; its host becomes
            ``actorHostname`` and its scheme/netloc prefixes the content URIs.
        application_name: value for ``application`` (usually the root group name)
        platform: value for ``platform``
        component_names: optional id -> name mapping, or a callable, used when
            the event carries no ``component_name`` of its own
    """

    def __init__(
        self,
        nifi_url: Optional[str] = None,
        *,
        application_name: Optional[str] = None,
        platform: str = DEFAULT_PLATFORM,
        component_names: Mapping[str, str] | ComponentNameLookup | None = None,
    ):
        self._nifi_url = nifi_url
        self._hostname: Optional[str] = None
        self._url_prefix: Optional[str] = None
        if nifi_url:
            parts = urlsplit(nifi_url)
            if not parts.scheme or not parts.netloc:
                raise ValueError(f"Not a valid URL: {nifi_url!r}")
            self._hostname = parts.hostname
            self._url_prefix = f"{parts.scheme}://{parts.netloc}"
        self._application = application_name
        self._platform = platform
        self._names = component_names

    def component_name(self, event: ProvenanceEvent) -> Optional[str]:
        if event.component_name is not None:
            return event.component_name
        if self._names is None or event.component_id is None:
            return None
        if callable(self._names):
            return self._names(event)
        return self._names.get(event.component_id)

    def to_dict(self, event: ProvenanceEvent) -> Dict[str, Any]:
        obj: Dict[str, Any] = {}
        _add(obj, "eventId", generate_id())
        _add(obj, "eventOrdinal", event.event_id)
        _add(obj, "eventType", event.event_type)
        _add(obj, "timestampMillis", event.event_time)
        _add(obj, "timestamp", format_millis_utc(event.event_time))
        _add(obj, "durationMillis", event.event_duration)
        _add(obj, "lineageStart", event.lineage_start_date)

        lineage = {i for i in event.lineage_identifiers if i is not None}
        if event.flowfile_uuid is not None:
            lineage.add(event.flowfile_uuid)
        _add_list(obj, "lineageIdentifiers", sorted(lineage))

        _add(obj, "details", event.details)
        _add(obj, "componentId", event.component_id)
        _add(obj, "componentType", event.component_type)
        _add(obj, "componentName", self.component_name(event))
        _add(obj, "entityId", event.flowfile_uuid)
        _add(obj, "entityType", ENTITY_TYPE)
        _add(obj, "entitySize", event.file_size)
        _add(obj, "previousEntitySize", event.previous_file_size)
        _add_map(obj, "updatedAttributes", event.updated_attributes)
        _add_map(obj, "previousAttributes", event.previous_attributes)

        _add(obj, "actorHostname", self._hostname)
        if self._url_prefix is not None:
            base = f"{self._url_prefix}/nifi-api/controller/provenance/events/{event.event_id}/content/"
            _add(obj, "contentURI", base + "output")
            _add(obj, "previousContentURI", base + "input")

        _add_list(obj, "parentIds", event.parent_uuids)
        _add_list(obj, "childIds", event.child_uuids)
        _add(obj, "transitUri", event.transit_uri)
        _add(obj, "remoteIdentifier", event.source_system_flowfile_identifier)
        _add(obj, "alternateIdentifier", event.alternate_identifier_uri)
        _add(obj, "platform", self._platform)
        _add(obj, "application", self._application)
        return obj

    def serialize(self, events: Sequence[ProvenanceEvent]) -> bytes:
        """Encode a batch as one UTF-8 JSON array.

        Raises SerializationError naming the first event that cannot be encoded.
        """
        objs = []
        for event in events:
            try:
                objs.append(self.to_dict(event))
            except (ValueError, OverflowError, OSError) as e:
                raise SerializationError(f"Cannot encode event {event.event_id}: {e}") from e
        return json.dumps(objs, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
