"""
Utility functions for the provenance relay.

Includes id generation and epoch-millis / ISO-8601 time helpers.
"""

import time
import uuid
from datetime import datetime, timezone


def generate_id() -> str:
    """Generate a UUID string for transaction and event identification."""
    return str(uuid.uuid4())


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def format_millis_utc(millis: int) -> str:
    """Format epoch millis as ``yyyy-MM-ddTHH:mm:ss.SSSZ`` in UTC."""
    dt = datetime.fromtimestamp(millis // 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis % 1000:03d}Z"
