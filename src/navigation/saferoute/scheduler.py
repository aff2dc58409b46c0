# scheduler.py
# Periodic background tasks (expiry sweep, synthetic hazards) behind one
# small interface, so tests can fast-forward time instead of sleeping.

import itertools
import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a periodic task; cancel() stops future runs."""

    def __init__(self, name: str, interval_s: float, fn: Callable[[], None]) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive.")
        self.name = name
        self.interval_s = interval_s
        self._fn = fn
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def run(self) -> None:
        """Execute once; failures are logged and never stop the schedule."""
        try:
            self._fn()
        except Exception:
            logger.exception(f"Scheduled task '{self.name}' failed.")


# ---------------------------------------------------------------------------
# Real time
# ---------------------------------------------------------------------------

class ThreadScheduler:
    """One daemon thread per task, woken every interval."""

    def __init__(self) -> None:
        self._tasks: List[ScheduledTask] = []
        self._threads: List[threading.Thread] = []

    def every(self, interval_s: float, fn: Callable[[], None], name: str = "task") -> ScheduledTask:
        task = ScheduledTask(name, interval_s, fn)

        def _loop() -> None:
            # wait() returns True once cancelled
            while not task._cancelled.wait(task.interval_s):
                task.run()

        thread = threading.Thread(target=_loop, name=f"scheduler-{name}", daemon=True)
        self._tasks.append(task)
        self._threads.append(thread)
        thread.start()
        logger.debug(f"Scheduled '{name}' every {interval_s}s.")
        return task

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        for task in self._tasks:
            task.cancel()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=timeout)
        self._tasks.clear()
        self._threads.clear()


# ---------------------------------------------------------------------------
# Simulated time
# ---------------------------------------------------------------------------

class ManualClock:
    """A callable clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("A clock cannot move backwards.")
        self.now += seconds


class _ManualEntry:
    __slots__ = ["task", "next_run", "seq"]

    def __init__(self, task: ScheduledTask, next_run: float, seq: int) -> None:
        self.task = task
        self.next_run = next_run
        self.seq = seq


class ManualScheduler:
    """
    Deterministic scheduler driven by a ManualClock.

    Usage:
        clock = ManualClock()
        scheduler = ManualScheduler(clock)
        store.start_background(scheduler)
        scheduler.advance(600)   # runs every due task in order
    """

    def __init__(self, clock: Optional[ManualClock] = None) -> None:
        self.clock = clock or ManualClock()
        self._entries: List[_ManualEntry] = []
        self._seq = itertools.count()

    def every(self, interval_s: float, fn: Callable[[], None], name: str = "task") -> ScheduledTask:
        task = ScheduledTask(name, interval_s, fn)
        self._entries.append(_ManualEntry(task, self.clock.now + interval_s, next(self._seq)))
        return task

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [
                e for e in self._entries
                if not e.task.cancelled and e.next_run <= target
            ]
            if not due:
                break
            entry = min(due, key=lambda e: (e.next_run, e.seq))
            self.clock.now = max(self.clock.now, entry.next_run)
            entry.next_run += entry.task.interval_s
            entry.task.run()
        self.clock.now = target

    def shutdown(self, timeout: Optional[float] = None) -> None:
        for entry in self._entries:
            entry.task.cancel()
        self._entries.clear()
