# route_tracker.py
# Tracks the agent's position against the active route.
# Call load_route() on every new route, then compute_stats() on every fix.

from typing import Optional, Tuple

from .geo_utils import closest_vertex, path_length
from .hazard_store import HazardStore
from .models import Coord, Instruction, NavigationStats, Route
from .nav_config import NavConfig


class RouteTracker:
    """
    Progress math for a single navigation session.

    Usage:
        tracker = RouteTracker(store, config)
        tracker.load_route(route)

        # Inside the position loop:
        index, off_by = tracker.closest_point(position)
        stats = tracker.compute_stats(position, speed_mps)
    """

    def __init__(self, hazard_store: HazardStore, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self._store = hazard_store
        self._route: Optional[Route] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def load_route(self, route: Route) -> None:
        """Track a new route from now on."""
        self._route = route

    def stop(self) -> None:
        self._route = None

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._route is not None

    @property
    def route(self) -> Optional[Route]:
        return self._route

    # ------------------------------------------------------------------
    # Core methods
    # ------------------------------------------------------------------

    def closest_point(self, position: Coord) -> Tuple[int, float]:
        """
        Nearest route vertex to position.

        Returns:
            (vertex index, distance in metres); (0, inf) without a route.
        """
        if self._route is None or not self._route.coordinates:
            return 0, float("inf")
        return closest_vertex(position, self._route.coordinates)

    def next_turn(self) -> Optional[Instruction]:
        if self._route is None:
            return None
        for instruction in self._route.instructions:
            if instruction.distance_m > 0:
                return instruction
        return None

    def compute_stats(self, position: Coord, speed_mps: float = 0.0) -> NavigationStats:
        """
        Recompute remaining distance, time, next turn, hazards and progress.

        Args:
            position:  Current agent position.
            speed_mps: Current speed estimate, reported as-is.

        Returns:
            NavigationStats; zeroed stats without a route.
        """
        if self._route is None or not self._route.coordinates:
            return NavigationStats(speed_mps=speed_mps)

        coords = self._route.coordinates
        index, to_vertex = closest_vertex(position, coords)
        remaining = path_length(coords, index) + to_vertex

        total = self._route.distance_m
        if total > 0:
            progress = max(0.0, min(1.0, 1 - remaining / total))
        else:
            progress = 1.0

        return NavigationStats(
            distance_remaining_m=round(remaining),
            time_remaining_s=round(remaining / self.config.average_speed_mps),
            next_turn=self.next_turn(),
            upcoming_hazards=self._store.upcoming_hazards(
                position, coords, self.config.look_ahead_m, self.config.upcoming_buffer_m,
            ),
            route_progress=progress,
            speed_mps=speed_mps,
        )
