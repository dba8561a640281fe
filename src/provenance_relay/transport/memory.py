from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from ..utils import generate_id
from .types import Direction, Transaction


@dataclass(frozen=True)
class Delivery:
    """One completed transaction as seen by the in-memory sink."""

    transaction_id: str
    packets: List[tuple] = field(default_factory=list)  # (data, attributes)


class MemoryTransaction(Transaction):
    def __init__(self, sink: "MemorySiteToSiteClient"):
        super().__init__(transaction_id=generate_id())
        self._sink = sink
        self._packets: List[tuple] = []

    def _do_send(self, data: bytes, attributes: Dict[str, str]) -> None:
        self._packets.append((data, attributes))

    def _do_confirm(self) -> None:
        pass

    def _do_complete(self) -> None:
        self._sink.deliveries.append(Delivery(self.transaction_id, list(self._packets)))


class MemorySiteToSiteClient:
    """In-process sink. Completed transactions land in ``deliveries``.

    Set ``penalized`` to make create_transaction signal backpressure.
    """

    def __init__(self) -> None:
        self.deliveries: List[Delivery] = []
        self.penalized = False
        self.transactions_created = 0
        self.closed = False

    def __enter__(self) -> "MemorySiteToSiteClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def create_transaction(self, direction: Direction = "send") -> Optional[Transaction]:
        if self.penalized:
            logger.debug("In-memory sink is penalized")
            return None
        self.transactions_created += 1
        return MemoryTransaction(self)

    def close(self) -> None:
        self.closed = True
