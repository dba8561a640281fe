"""
Custom exceptions for the provenance relay.

Every error here is local to one forwarding cycle; the next scheduled tick
retries. Only TransactionStateError signals a programming error.
"""


class RelayError(Exception):
    """Base error for the relay."""

    pass


class StorageError(RelayError):
    """Offset state could not be read, parsed or written."""

    pass


class FetchError(RelayError):
    """Event source unavailable or returned a malformed batch."""

    pass


class SerializationError(RelayError):
    """An event in the batch could not be encoded for the wire."""

    pass


class TransportError(RelayError):
    """Connection, send, confirm or complete failure against the sink."""

    pass


class BackpressureSignal(RelayError):
    """Remote side is penalized or overloaded; try again on a later tick.

    Not a failure: the cycle is skipped without touching the offset.
    """

    pass


class TransactionStateError(RelayError):
    """send/confirm/complete called out of order on a transaction."""

    pass


class QueueFullError(RelayError):
    """Intake queue is at capacity and the overflow policy refuses the item."""

    pass


BACKPRESSURE_STATUSES = frozenset({429, 503})


def map_http_error(status_code: int, detail: str = "") -> RelayError:
    """Classify a non-success HTTP status from the sink."""
    message = f"HTTP {status_code}" + (f": {detail}" if detail else "")
    if status_code in BACKPRESSURE_STATUSES:
        return BackpressureSignal(message)
    return TransportError(message)
