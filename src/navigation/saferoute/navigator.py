# navigator.py
# Public entry point for live navigation.
# Owns the session state machine; routing, hazards and progress math are
# delegated to specialist modules.

import dataclasses
import logging
import math
import threading
import time
from typing import Any, Callable, List, Optional

from .events import EventBus, Listener
from .geo_utils import distance
from .hazard_store import HazardStore
from .models import (
    Coord, EventKind, NavigationSnapshot, NavigationState, NavigationStats,
    PositionSample, Route, RouteHazard,
)
from .nav_config import NavConfig
from .position_feed import PositionFeed, SpeedEstimator
from .route_tracker import RouteTracker
from .routing_engine import RoutingEngine

logger = logging.getLogger(__name__)

REASON_DEVIATION = "deviation"
REASON_MANUAL = "manual"


class RouteUnavailableError(RuntimeError):
    """Navigation could not start because no route was obtained."""


def _sample_problem(sample: PositionSample) -> Optional[str]:
    """Why a fix cannot be used, or None if it is fine."""
    values = (sample.lat, sample.lon, sample.timestamp)
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in values):
        return f"non-numeric position sample {values}"
    if not all(math.isfinite(v) for v in values):
        return f"non-finite position sample {values}"
    if not (-90.0 <= sample.lat <= 90.0 and -180.0 <= sample.lon <= 180.0):
        return f"position out of range ({sample.lat}, {sample.lon})"
    return None


class NavigationController:
    """
    High-level navigation facade.

    Typical lifecycle:
        nav = NavigationController(store, engine)
        nav.subscribe(on_event)
        nav.start(destination, current_position)

        # Position source callback:
        nav.push_position(PositionSample(lat, lon, timestamp))

        nav.stop()

    Args:
        hazard_store:   HazardStore queried for scoring and upcoming hazards.
        routing_engine: RoutingEngine used for the first route and reroutes.
        config:         Optional NavConfig; defaults to NavConfig().
        clock:          Monotonic clock for the reroute cooldown.
        bus:            EventBus for navigation events.
    """

    def __init__(
        self,
        hazard_store: HazardStore,
        routing_engine: RoutingEngine,
        config: Optional[NavConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config or NavConfig()
        self._store = hazard_store
        self._engine = routing_engine
        self._clock = clock
        self._bus = bus if bus is not None else EventBus("navigation")

        # Specialist modules
        self._tracker = RouteTracker(hazard_store, self.config)
        self._speed = SpeedEstimator(self.config)

        # Session fields, guarded by _lock
        self._lock = threading.RLock()
        self._state = NavigationState.IDLE
        self._destination: Optional[Coord] = None
        self._position: Optional[Coord] = None
        self._last_timestamp: Optional[float] = None
        self._last_reroute_at: Optional[float] = None
        self._stats = NavigationStats()
        self._feed: Optional[PositionFeed] = None
        self._session = 0

        self._start_lock = threading.Lock()
        self._reroute_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self._bus.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._bus.unsubscribe(listener)

    # ------------------------------------------------------------------
    # Navigation control
    # ------------------------------------------------------------------

    def start(self, destination: Coord, position: Coord) -> Route:
        """
        Compute the best route and begin a session.

        Any active session is stopped first. Concurrent calls run one at a time.

        Args:
            destination: Target coordinate.
            position:    Current position of the agent.

        Returns:
            The route being tracked.

        Raises:
            RouteUnavailableError: If no route could be obtained; the
                controller stays idle.
        """
        with self._start_lock:
            if self.state is not NavigationState.IDLE:
                self.stop()

            logger.info(f"Calculating route: {position} → {destination}")
            try:
                route = self._engine.select_best_route(position, destination, self._store.all())
            except Exception as e:
                logger.error(f"Route calculation failed: {e}")
                raise RouteUnavailableError(f"Could not calculate route: {e}") from e
            if route is None or len(route.coordinates) < 2:
                raise RouteUnavailableError("Could not calculate route.")

            with self._lock:
                self._session += 1
                self._state = NavigationState.ACTIVE
                self._destination = destination
                self._position = position
                self._last_timestamp = None
                self._last_reroute_at = None
                self._speed.reset()
                self._tracker.load_route(route)
                self._stats = self._tracker.compute_stats(position)
                self._feed = PositionFeed(self.update_position)
                self._feed.start()

            logger.info(f"Route ready: {route.id}, {int(route.distance_m)} m, {len(route.coordinates)} points.")
            self._bus.emit(EventKind.NAVIGATION_STARTED, {"route": route, "destination": destination})
            return route

    def stop(self) -> None:
        """End the session; position consumption halts before this returns."""
        with self._lock:
            feed, self._feed = self._feed, None
        if feed is not None:
            feed.close()

        with self._lock:
            was_active = self._state is not NavigationState.IDLE
            self._session += 1
            self._state = NavigationState.IDLE
            self._destination = None
            self._position = None
            self._last_timestamp = None
            self._stats = NavigationStats()
            self._tracker.stop()
            self._speed.reset()

        if was_active:
            logger.info("Navigation stopped.")
            self._bus.emit(EventKind.NAVIGATION_STOPPED)

    # ------------------------------------------------------------------
    # Position input
    # ------------------------------------------------------------------

    def push_position(self, sample: PositionSample) -> bool:
        """
        Hand a sample to the session's feed; only the latest pending one is processed.

        Returns:
            False when no session is running.
        """
        with self._lock:
            feed = self._feed
        if feed is None:
            return False
        return feed.push(sample)

    def report_position_error(self, error: Any) -> None:
        """Surface a position-source failure; the session keeps its last position."""
        with self._lock:
            if self._state is NavigationState.IDLE:
                return
        logger.warning(f"Position source error: {error}")
        self._bus.emit(EventKind.POSITION_ERROR, error)

    def update_position(self, sample: PositionSample) -> Optional[NavigationStats]:
        """
        Process one position fix.

        Args:
            sample: The new fix.

        Returns:
            Updated stats, or None if the sample was ignored or ended the session.
        """
        problem = _sample_problem(sample)
        if problem is not None:
            self.report_position_error(ValueError(problem))
            return None

        with self._lock:
            if self._state not in (NavigationState.ACTIVE, NavigationState.REROUTING):
                return None
            if self._last_timestamp is not None and sample.timestamp < self._last_timestamp:
                logger.debug(f"Discarding stale sample at t={sample.timestamp}.")
                return None
            session = self._session
            self._last_timestamp = sample.timestamp
            previous = self._position
            position = sample.coord
            self._position = position
            speed = self._speed.update(sample)
            destination = self._destination

        # 1. Arrival
        if distance(position, destination) < self.config.arrival_threshold_m:
            self._complete(session, position)
            return None

        # 2. Deviation
        _, off_by = self._tracker.closest_point(position)
        is_off_route = off_by > self.config.deviation_threshold_m
        if is_off_route and self._cooldown_elapsed():
            logger.info(f"Off route by {int(off_by)} m, rerouting.")
            self._reroute(REASON_DEVIATION, session)

        # 3. Progress
        stats = self._tracker.compute_stats(position, speed)
        with self._lock:
            if session != self._session:
                return None
            self._stats = stats

        self._bus.emit(EventKind.POSITION_UPDATED, {
            "position": position,
            "previous_position": previous,
            "is_off_route": is_off_route,
            "stats": stats,
        })
        return stats

    def _complete(self, session: int, position: Coord) -> None:
        with self._lock:
            if session != self._session or self._state not in (
                NavigationState.ACTIVE, NavigationState.REROUTING,
            ):
                return
            self._state = NavigationState.COMPLETED
            destination = self._destination

        logger.info("Destination reached.")
        self._bus.emit(EventKind.DESTINATION_REACHED, {
            "destination": destination,
            "final_position": position,
        })
        self.stop()

    # ------------------------------------------------------------------
    # Rerouting
    # ------------------------------------------------------------------

    def _cooldown_elapsed(self) -> bool:
        with self._lock:
            last = self._last_reroute_at
        return last is None or self._clock() - last >= self.config.reroute_cooldown_s

    def force_reroute(self) -> Optional[Route]:
        """
        Reroute now, ignoring deviation and cooldown.

        Returns:
            The new route, or None if no session is active, a reroute is
            already running, or the reroute failed.
        """
        with self._lock:
            if self._state is not NavigationState.ACTIVE or self._position is None:
                return None
            session = self._session
        return self._reroute(REASON_MANUAL, session)

    def _reroute(self, reason: str, session: int) -> Optional[Route]:
        # Only one reroute at a time; later requests are dropped
        if not self._reroute_lock.acquire(blocking=False):
            logger.debug(f"Reroute ({reason}) skipped, one is already running.")
            return None
        try:
            with self._lock:
                if session != self._session or self._state is not NavigationState.ACTIVE:
                    return None
                self._state = NavigationState.REROUTING
                if reason == REASON_DEVIATION:
                    self._last_reroute_at = self._clock()
                origin = self._position
                destination = self._destination

            self._bus.emit(EventKind.REROUTING, {"reason": reason})
            try:
                route = self._engine.select_best_route(origin, destination, self._store.all())
            except Exception as e:
                logger.error(f"Rerouting failed, keeping current route: {e}")
                with self._lock:
                    if session != self._session:
                        return None
                    self._state = NavigationState.ACTIVE
                self._bus.emit(EventKind.REROUTE_ERROR, {"error": e, "reason": reason})
                return None

            with self._lock:
                if session != self._session:
                    logger.info("Reroute finished after the session ended; result discarded.")
                    return None
                self._tracker.load_route(route)
                self._state = NavigationState.ACTIVE
                self._stats = self._tracker.compute_stats(origin, self._speed.speed)

            logger.info(f"Route updated ({reason}): {route.id}, {int(route.distance_m)} m.")
            self._bus.emit(EventKind.ROUTE_UPDATED, {"route": route, "reason": reason})
            return route
        finally:
            self._reroute_lock.release()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def route_hazards(self, buffer_m: Optional[float] = None) -> List[RouteHazard]:
        """Hazards along the current route; empty when not navigating."""
        route = self.current_route
        if route is None:
            return []
        if buffer_m is None:
            buffer_m = self.config.hazard_buffer_m
        return self._store.query_along_route(route.coordinates, buffer_m)

    def snapshot(self) -> NavigationSnapshot:
        with self._lock:
            return NavigationSnapshot(
                state=self._state,
                is_rerouting=self._state is NavigationState.REROUTING,
                current_route=self._tracker.route,
                destination=self._destination,
                current_position=self._position,
                stats=self._stats,
            )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def settings(self) -> NavConfig:
        """A copy of the active settings."""
        return dataclasses.replace(self.config)

    def update_settings(self, **changes) -> NavConfig:
        """
        Replace individual settings, e.g. update_settings(deviation_threshold_m=150).

        Raises:
            ValueError: If a name is not a NavConfig field.
        """
        known = {f.name for f in dataclasses.fields(NavConfig)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown navigation setting(s): {', '.join(unknown)}")

        with self._lock:
            self.config = dataclasses.replace(self.config, **changes)
            self._tracker.config = self.config
            self._speed.config = self.config
        logger.info(f"Navigation settings updated: {changes}")
        return self.settings

    # ------------------------------------------------------------------
    # Convenience read-only properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in (NavigationState.ACTIVE, NavigationState.REROUTING)

    @property
    def current_route(self) -> Optional[Route]:
        return self._tracker.route

    @property
    def stats(self) -> NavigationStats:
        return self._stats
