# routing_engine.py
# Candidate routes from an external provider (or a straight-line fallback),
# scored by hazard exposure. Provider failures never leave this module.

import logging
import threading
from dataclasses import replace
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .geo_utils import (
    bearing, bearing_to_compass, distance, interpolate,
    min_distance_to_route, segment_intersects_polygon,
)
from .models import Coord, Hazard, HazardKind, Instruction, PointGeometry, Route
from .nav_config import SAFETY_WEIGHTS, NavConfig

logger = logging.getLogger(__name__)

FALLBACK_ROUTE_ID = "fallback-route"
UNKNOWN_KIND_WEIGHT = 5.0


class RoutingProviderError(RuntimeError):
    """The external routing provider failed or answered with garbage."""


class RoutingProvider(Protocol):
    def fetch_routes(self, origin: Coord, destination: Coord, alternatives: int) -> List[Route]:
        ...


class RoutingEngine:
    """
    Picks the safest reasonable route between two points.

    Args:
        provider: Anything with fetch_routes(origin, destination, alternatives);
                  None means every request uses the fallback route.
        config:   NavConfig instance.
    """

    def __init__(self, provider: Optional[RoutingProvider] = None, config: Optional[NavConfig] = None) -> None:
        self.provider = provider
        self.config = config or NavConfig()
        self._cache: Dict[Tuple[float, float, float, float], List[Route]] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def get_candidate_routes(
        self,
        start: Coord,
        end: Coord,
        alternatives: Optional[int] = None,
    ) -> List[Route]:
        """
        Provider routes for start→end, never empty.

        Provider answers (including an empty one, replaced by the fallback)
        are cached per (start, end) until clear_cache(). A failed request is
        not cached, so the next call asks the provider again.
        """
        key = (start.lat, start.lon, end.lat, end.lon)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        if self.provider is None:
            return [self.create_fallback_route(start, end)]

        if alternatives is None:
            alternatives = self.config.alternatives

        try:
            routes = self.provider.fetch_routes(start, end, alternatives)
        except Exception as e:
            logger.error(f"Routing provider failed, using fallback route: {e}")
            return [self.create_fallback_route(start, end)]

        usable = [r for r in (routes or []) if len(r.coordinates) >= 2]
        if not usable:
            logger.warning("Routing provider returned no usable route, using fallback route.")
            usable = [self.create_fallback_route(start, end)]

        with self._cache_lock:
            self._cache[key] = usable
        return list(usable)

    def create_fallback_route(self, start: Coord, end: Coord) -> Route:
        """Straight line with a waypoint roughly every kilometre."""
        total = distance(start, end)
        segments = max(2, int(total // self.config.fallback_waypoint_spacing_m))

        waypoints = [start]
        for i in range(1, segments):
            waypoints.append(interpolate(start, end, i / segments))
        waypoints.append(end)

        duration = total / self.config.fallback_speed_mps
        direction = bearing_to_compass(bearing(start, end))
        return Route(
            id=FALLBACK_ROUTE_ID,
            coordinates=tuple(waypoints),
            distance_m=total,
            duration_s=duration,
            instructions=(
                Instruction(
                    text=f"Head {direction} toward destination",
                    distance_m=total,
                    maneuver_type="straight",
                    duration_s=duration,
                ),
            ),
        )

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_route(self, route: Route, hazards: Iterable[Hazard]) -> float:
        """
        Hazard penalty of a route; lower is safer.

        Polygons add the risk-area weight once per route segment that
        touches them. Points within the hazard buffer add their kind weight,
        decaying linearly to zero at the buffer edge.
        """
        coords = route.coordinates
        buffer_m = self.config.hazard_buffer_m
        penalty = 0.0

        for hazard in hazards:
            if isinstance(hazard.geometry, PointGeometry):
                d = min_distance_to_route(hazard.geometry.coord, coords)
                if d <= buffer_m:
                    weight = SAFETY_WEIGHTS.get(hazard.kind, UNKNOWN_KIND_WEIGHT)
                    penalty += weight * (1 - d / buffer_m)
            else:
                ring = hazard.geometry.ring
                for i in range(len(coords) - 1):
                    if segment_intersects_polygon(coords[i], coords[i + 1], ring):
                        penalty += SAFETY_WEIGHTS[HazardKind.RISK_AREA]

        return penalty

    def _compare(self, a: Route, b: Route) -> int:
        # Comparable safety: the shorter route wins
        if abs(a.safety_score - b.safety_score) < self.config.score_tie_tolerance:
            return (a.distance_m > b.distance_m) - (a.distance_m < b.distance_m)
        return -1 if a.safety_score < b.safety_score else 1

    def select_best_route(self, start: Coord, end: Coord, hazards: Iterable[Hazard] = ()) -> Route:
        """Score every candidate and return the best one (as a scored copy)."""
        hazards = list(hazards)
        candidates = self.get_candidate_routes(start, end)
        scored = [replace(r, safety_score=self.score_route(r, hazards)) for r in candidates]
        scored.sort(key=cmp_to_key(self._compare))

        best = scored[0]
        logger.info(
            f"Selected route {best.id} of {len(scored)}: "
            f"score {best.safety_score:.1f}, {int(best.distance_m)} m."
        )
        return best
