"""Forwarding coordinator

Tick-driven pipeline from an event source to a site-to-site sink:
- IntakeQueue (bounded, thread-safe, watermarks + overflow strategies)
- ForwardingLoop (fetch -> serialize -> transact -> commit offset)
- ForwardingScheduler (fixed-interval, non-overlapping ticks)
"""

from ..errors import QueueFullError
from .queue import IntakeQueue, OverflowStrategy
from .forwarder import (
    CycleOutcome,
    CycleResult,
    CycleState,
    ForwardingLoop,
)
from .scheduler import ForwardingScheduler

__all__ = [
    # types
    "OverflowStrategy",
    "QueueFullError",
    "CycleOutcome",
    "CycleResult",
    "CycleState",
    # runtime
    "IntakeQueue",
    "ForwardingLoop",
    "ForwardingScheduler",
]
