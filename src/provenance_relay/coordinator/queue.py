from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Generic, List, Literal, Optional, TypeVar

from loguru import logger

from ..errors import QueueFullError
from ..metrics.registry import RELAY_INTAKE_DROPPED_TOTAL, RELAY_INTAKE_QUEUE_DEPTH

T = TypeVar("T")
OverflowStrategy = Literal["block", "drop_oldest", "error"]
WatermarkCallback = Callable[[], None]

DEFAULT_CAPACITY = 10_000


class IntakeQueue(Generic[T]):
    """Bounded FIFO between a push subscription and the forwarding loop.

    Producers call ``enqueue`` from any thread; the forwarding loop calls
    ``drain`` from its tick. The queue owns all locking.

    With the default ``block`` strategy a full queue stalls the producer until
    the loop drains, with no timeout unless one is passed. If the loop stops
    draining, the subscription thread waits indefinitely.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        high_watermark: int | None = None,
        low_watermark: int | None = None,
        *,
        overflow_strategy: OverflowStrategy = "block",
        on_high: Optional[WatermarkCallback] = None,
        on_low: Optional[WatermarkCallback] = None,
        drop_callback: Optional[Callable[[T], None]] = None,
        name: str = "intake",
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if overflow_strategy not in ("block", "drop_oldest", "error"):
            raise ValueError(f"Unknown overflow strategy: {overflow_strategy}")

        self._capacity = capacity
        self._items: Deque[T] = deque()
        self._cond = threading.Condition()

        self._high_wm = (
            high_watermark if high_watermark is not None else max(1, int(0.8 * capacity))
        )
        self._low_wm = low_watermark if low_watermark is not None else int(0.5 * capacity)
        self._overflow = overflow_strategy
        self._on_high = on_high
        self._on_low = on_low
        self._drop_cb = drop_callback
        self._name = name

        self._high_fired = False  # avoid duplicate signals
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        with self._cond:
            return len(self._items)

    @property
    def overflow_strategy(self) -> OverflowStrategy:
        return self._overflow

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self.size

    def enqueue(self, item: T, timeout: float | None = None) -> None:
        """Add item according to the overflow policy; emits high watermark once."""
        dropped: List[T] = []
        with self._cond:
            self._check_open()
            if len(self._items) >= self._capacity:
                if self._overflow == "error":
                    raise QueueFullError(f"IntakeQueue {self._name} is full")
                if self._overflow == "drop_oldest":
                    dropped.append(self._items.popleft())
                else:
                    self._wait_for_space(timeout)

            self._items.append(item)
            size = len(self._items)
            fire_high = self._cross_high(size)
            self._cond.notify_all()

        RELAY_INTAKE_QUEUE_DEPTH.labels(queue=self._name).set(size)
        for old in dropped:
            RELAY_INTAKE_DROPPED_TOTAL.labels(queue=self._name).inc()
            logger.warning(f"IntakeQueue {self._name} full; dropped oldest message")
            if self._drop_cb:
                self._drop_cb(old)
        if fire_high:
            logger.warning(f"IntakeQueue {self._name} above high watermark ({size}/{self._capacity})")
            if self._on_high:
                self._on_high()

    def drain(self, max_count: int) -> List[T]:
        """Remove and return up to max_count items in FIFO order. Never blocks."""
        if max_count <= 0:
            return []
        with self._cond:
            n = min(max_count, len(self._items))
            out = [self._items.popleft() for _ in range(n)]
            size = len(self._items)
            fire_low = self._cross_low(size)
            if out:
                self._cond.notify_all()

        if out:
            RELAY_INTAKE_QUEUE_DEPTH.labels(queue=self._name).set(size)
        if fire_low:
            logger.info(f"IntakeQueue {self._name} recovered below low watermark ({size})")
            if self._on_low:
                self._on_low()
        return out

    def close(self) -> None:
        """Refuse further items and wake any blocked producers."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    # --------------------------- internals

    def _check_open(self) -> None:
        if self._closed:
            raise QueueFullError(f"IntakeQueue {self._name} is closed")

    def _wait_for_space(self, timeout: float | None) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while len(self._items) >= self._capacity:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise QueueFullError(f"IntakeQueue {self._name} still full after {timeout}s")
            self._cond.wait(remaining)
            self._check_open()

    def _cross_high(self, size: int) -> bool:
        if not self._high_fired and size >= self._high_wm:
            self._high_fired = True
            return True
        return False

    def _cross_low(self, size: int) -> bool:
        if self._high_fired and size <= self._low_wm:
            self._high_fired = False
            return True
        return False
