"""
Pytest configuration and fixtures for provenance-relay.

Provides event factories, offset/state fixtures and in-memory collaborators.
"""

import pytest

from provenance_relay.config import get_settings
from provenance_relay.models import ProvenanceEvent
from provenance_relay.offsets import FileOffsetStore
from provenance_relay.source import MemoryEventSource
from provenance_relay.transport import MemorySiteToSiteClient

BASE_MILLIS = 1_700_000_000_000


def make_event(event_id: int, **overrides) -> ProvenanceEvent:
    fields = {
        "event_id": event_id,
        "event_type": "RECEIVE",
        "event_time": BASE_MILLIS + event_id,
        "event_duration": 5,
        "lineage_start_date": BASE_MILLIS,
        "lineage_identifiers": [f"lineage-{event_id}"],
        "component_id": "proc-1",
        "component_type": "ListenHTTP",
        "flowfile_uuid": f"ff-{event_id}",
        "file_size": 128,
        "updated_attributes": {"filename": f"file-{event_id}.json"},
        "previous_attributes": {},
        "transit_uri": "http://source.example.com/ingest",
    }
    fields.update(overrides)
    return ProvenanceEvent(**fields)


@pytest.fixture
def event_factory():
    """Factory building a realistic ProvenanceEvent for an id."""
    return make_event


@pytest.fixture
def three_events():
    """Events 10, 11 and 12."""
    return [make_event(i) for i in (10, 11, 12)]


@pytest.fixture
def memory_source(three_events):
    return MemoryEventSource(three_events)


@pytest.fixture
def memory_client():
    client = MemorySiteToSiteClient()
    yield client
    client.close()


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "conf" / "relay.state"


@pytest.fixture
def offset_store(state_file):
    return FileOffsetStore(state_file)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached process-wide; clear around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
