from __future__ import annotations

from enum import Enum
from typing import Dict, Literal, Mapping, Optional, Protocol

from ..errors import TransactionStateError, TransportError

Direction = Literal["send"]


class TransactionState(str, Enum):
    CREATED = "created"
    SENT = "sent"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction:
    """One send -> confirm -> complete handshake with the sink.

    Subclasses implement the ``_do_*`` hooks; this class enforces ordering.
    A TransportError from any hook fails the transaction before propagating.
    """

    def __init__(self, transaction_id: Optional[str] = None):
        self.transaction_id = transaction_id
        self._state = TransactionState.CREATED
        self._cancelled = False

    @property
    def state(self) -> TransactionState:
        return self._state

    def send(self, data: bytes, attributes: Mapping[str, str]) -> None:
        self._require("send", TransactionState.CREATED, TransactionState.SENT)
        self._guarded(self._do_send, data, dict(attributes))
        self._state = TransactionState.SENT

    def confirm(self) -> None:
        self._require("confirm", TransactionState.SENT)
        self._guarded(self._do_confirm)
        self._state = TransactionState.CONFIRMED

    def complete(self) -> None:
        self._require("complete", TransactionState.CONFIRMED)
        self._guarded(self._do_complete)
        self._state = TransactionState.COMPLETED

    def cancel(self, reason: str = "") -> None:
        """Abandon the transaction; no-op once completed or already cancelled."""
        if self._state == TransactionState.COMPLETED or self._cancelled:
            return
        self._state = TransactionState.FAILED
        self._cancelled = True
        self._do_cancel(reason)

    # --------------------------- hooks

    def _do_send(self, data: bytes, attributes: Dict[str, str]) -> None:
        raise NotImplementedError

    def _do_confirm(self) -> None:
        raise NotImplementedError

    def _do_complete(self) -> None:
        raise NotImplementedError

    def _do_cancel(self, reason: str) -> None:
        pass

    # --------------------------- internals

    def _require(self, op: str, *allowed: TransactionState) -> None:
        if self._state not in allowed:
            raise TransactionStateError(
                f"Cannot {op} transaction {self.transaction_id} in state {self._state.value}"
            )

    def _guarded(self, fn, *args) -> None:
        try:
            fn(*args)
        except TransportError:
            self._state = TransactionState.FAILED
            raise


class SiteToSiteClient(Protocol):
    """Reusable session with a downstream input port."""

    def create_transaction(self, direction: Direction = "send") -> Optional[Transaction]:
        """Return None when the remote side is penalized; try again later."""
        ...

    def close(self) -> None: ...
