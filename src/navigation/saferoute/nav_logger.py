# nav_logger.py
# Handles all file I/O for navigation sessions.
# Subscribe an instance to the controller (and optionally the hazard store):
# it saves every new route as JSON and appends each event to a JSONL log.

import json
import logging
import os
from datetime import datetime
from typing import Any, Optional

from .models import Coord, EventKind, Hazard, NavigationStats, Route
from .nav_config import NavConfig

# Standard Python logger, configured at the app entry point
logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert event payloads into plain JSON types."""
    if isinstance(value, Route):
        return {
            "id": value.id,
            "distance_m": value.distance_m,
            "duration_s": value.duration_s,
            "safety_score": value.safety_score,
            "points": len(value.coordinates),
        }
    if isinstance(value, (Coord, NavigationStats)):
        return value.to_dict()
    if isinstance(value, Hazard):
        return value.to_geojson()
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class NavLogger:
    """
    Persists routes and navigation events to JSON files.

    Args:
        config: NavConfig instance for file paths and directories.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        os.makedirs(self.config.log_dir, exist_ok=True)

    def __call__(self, kind: EventKind, payload: Any = None) -> None:
        if kind in (EventKind.NAVIGATION_STARTED, EventKind.ROUTE_UPDATED):
            self.save_route(payload["route"])
        self.log_event(kind, payload)

    # ------------------------------------------------------------------
    # Route persistence
    # ------------------------------------------------------------------

    def save_route(self, route: Route) -> bool:
        """
        Serialize a route to JSON, replacing the previous one.

        Returns:
            True on success, False on failure.
        """
        filepath = self.config.route_filepath
        try:
            data = {
                "saved_at": datetime.now().isoformat(),
                "route": route.to_dict(),
            }
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            logger.info(f"Route saved to {filepath} ({len(route.coordinates)} points).")
            return True
        except OSError as e:
            logger.error(f"Failed to save route to {filepath}: {e}")
            return False

    # ------------------------------------------------------------------
    # Session event logging
    # ------------------------------------------------------------------

    def log_event(self, kind: EventKind, payload: Any = None) -> None:
        """Append a single event to the session log file."""
        entry = {
            "timestamp": datetime.now().isoformat(),
            "event": kind.value,
            "data": to_jsonable(payload),
        }
        try:
            with open(self.config.session_filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Failed to write event log: {e}")
