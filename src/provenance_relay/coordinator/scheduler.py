from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from .forwarder import CycleResult, ForwardingLoop


class ForwardingScheduler:
    """Runs ``loop.run_cycle()`` on a fixed interval in one background thread.

    A single thread means ticks never overlap. Cycle-local failures are handled
    inside the loop; anything that escapes it is a bug, so it is logged, kept in
    ``last_error`` and the thread stops.
    """

    def __init__(self, loop: ForwardingLoop, interval: float = 5.0, *, name: str = "relay-scheduler"):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._loop = loop
        self._interval = interval
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self.last_result: Optional[CycleResult] = None
        self.last_error: Optional[BaseException] = None
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self.last_error = None
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.info(f"Scheduler {self._name} started (interval={self._interval:.1f}s)")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Scheduler {self._name} did not stop within {timeout}s")
            else:
                self._thread = None
        logger.info(f"Scheduler {self._name} stopped after {self.cycles} cycles")

    def run_once(self) -> CycleResult:
        """Run a single tick in the calling thread."""
        with self._lock:
            result = self._loop.run_cycle()
            self.last_result = result
            self.cycles += 1
            return result

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the scheduler thread exits; True if it did."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as exc:
                self.last_error = exc
                logger.exception(f"Scheduler {self._name} stopping after unexpected error")
                return
            self._stop.wait(self._interval)
