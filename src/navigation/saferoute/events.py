# events.py
# Observer registry shared by the hazard store and the navigation controller.
# Delivery is synchronous; one failing listener never blocks the others.

import logging
import threading
from typing import Any, Callable, List

from .models import EventKind

logger = logging.getLogger(__name__)

Listener = Callable[[EventKind, Any], None]


class EventBus:
    """
    Holds listeners and fans events out to them.

    Args:
        name: Label used in log messages (e.g. "hazards", "navigation").
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def __len__(self) -> int:
        return len(self._listeners)

    def emit(self, kind: EventKind, payload: Any = None) -> None:
        # Copy so listeners may (un)subscribe while being notified
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(kind, payload)
            except Exception:
                logger.exception(f"[{self.name}] Listener {listener!r} failed on {kind.value}.")
