"""
Pydantic data models for the provenance relay.

A ProvenanceEvent is the unit of forwarding: immutable, ordered by event_id.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventType(str, Enum):
    """Provenance event types emitted by the dataflow runtime."""

    CREATE = "CREATE"
    RECEIVE = "RECEIVE"
    FETCH = "FETCH"
    SEND = "SEND"
    DOWNLOAD = "DOWNLOAD"
    DROP = "DROP"
    EXPIRE = "EXPIRE"
    FORK = "FORK"
    JOIN = "JOIN"
    CLONE = "CLONE"
    CONTENT_MODIFIED = "CONTENT_MODIFIED"
    ATTRIBUTES_MODIFIED = "ATTRIBUTES_MODIFIED"
    ROUTE = "ROUTE"
    ADDINFO = "ADDINFO"
    REPLAY = "REPLAY"
    UNKNOWN = "UNKNOWN"


class ProvenanceEvent(BaseModel):
    """One provenance/audit record with a monotonically increasing event_id."""

    model_config = ConfigDict(frozen=True)

    event_id: int = Field(ge=0)
    event_type: str = EventType.UNKNOWN.value
    event_time: int  # epoch millis
    event_duration: Optional[int] = None
    lineage_start_date: Optional[int] = None
    lineage_identifiers: List[str] = Field(default_factory=list)
    details: Optional[str] = None
    component_id: Optional[str] = None
    component_type: Optional[str] = None
    component_name: Optional[str] = None
    flowfile_uuid: Optional[str] = None
    file_size: Optional[int] = None
    previous_file_size: Optional[int] = None
    updated_attributes: Optional[Dict[str, Optional[str]]] = None
    previous_attributes: Optional[Dict[str, Optional[str]]] = None
    parent_uuids: Optional[List[Optional[str]]] = None
    child_uuids: Optional[List[Optional[str]]] = None
    transit_uri: Optional[str] = None
    source_system_flowfile_identifier: Optional[str] = None
    alternate_identifier_uri: Optional[str] = None

    @field_validator("event_type", mode="before")
    @classmethod
    def _upcase_type(cls, v: Any) -> str:
        if isinstance(v, EventType):
            return v.value
        return str(v).upper()


class PushMessage(BaseModel):
    """Raw message received from a streaming channel, before sequencing."""

    model_config = ConfigDict(frozen=True)

    channel: str
    received_millis: int
    data: Dict[str, Any]
