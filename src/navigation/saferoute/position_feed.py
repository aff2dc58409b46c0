# position_feed.py
# Push-style position input: a single-slot mailbox drained by one worker
# thread, plus the speed estimate derived from consecutive fixes.

import logging
import threading
from typing import Callable, Optional

from .geo_utils import distance
from .models import PositionSample
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

Handler = Callable[[PositionSample], None]


class PositionFeed:
    """
    Coalescing position mailbox.

    A newer sample replaces one that has not been handled yet, so the
    handler always sees the most recent fix and never a backlog.

    Usage:
        feed = PositionFeed(controller.update_position)
        feed.start()
        feed.push(sample)      # from the GPS callback
        feed.close()           # stops consumption, waits for the worker

    Args:
        handler: Called on the worker thread with each sample taken.
    """

    def __init__(self, handler: Handler, name: str = "position-feed") -> None:
        self._handler = handler
        self._name = name
        self._pending: Optional[PositionSample] = None
        self._closed = False
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, sample: PositionSample) -> bool:
        """Offer a sample; returns False once the feed is closed."""
        with self._cond:
            if self._closed:
                return False
            if self._pending is not None:
                self.dropped += 1
            self._pending = sample
            self._cond.notify()
        return True

    def take(self, timeout: Optional[float] = None) -> Optional[PositionSample]:
        """
        Wait for the pending sample and claim it.

        Returns:
            The sample, or None if the feed closed or the timeout passed.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._pending is not None or self._closed, timeout):
                return None
            if self._closed:
                return None
            sample, self._pending = self._pending, None
            return sample

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            sample = self.take()
            if sample is None:
                break
            try:
                self._handler(sample)
            except Exception:
                logger.exception(f"Position handler failed on {sample}.")

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Discard any pending sample and stop the worker."""
        with self._cond:
            self._closed = True
            self._pending = None
            self._cond.notify_all()

        thread = self._thread
        # The handler itself may close the feed (e.g. on arrival)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)


class SpeedEstimator:
    """
    Current speed in m/s from a stream of samples.

    A sample's own speed wins when present and non-negative. Otherwise the
    speed is derived from the distance to the previous sample, smoothed
    against the previous estimate.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self._last: Optional[PositionSample] = None
        self._speed: Optional[float] = None

    @property
    def speed(self) -> float:
        return self._speed or 0.0

    def reset(self) -> None:
        self._last = None
        self._speed = None

    def update(self, sample: PositionSample) -> float:
        cfg = self.config
        speed = self._speed

        if sample.speed is not None and sample.speed >= 0:
            speed = sample.speed
        elif self._last is not None:
            dt = sample.timestamp - self._last.timestamp
            if cfg.min_speed_interval_s < dt < cfg.max_speed_interval_s:
                instant = distance(self._last.coord, sample.coord) / dt
                if speed is None:
                    speed = instant
                else:
                    speed = cfg.speed_smoothing * speed + (1 - cfg.speed_smoothing) * instant

        max_mps = cfg.max_speed_kmh / 3.6
        self._speed = None if speed is None else max(0.0, min(max_mps, speed))
        self._last = sample
        return self.speed
