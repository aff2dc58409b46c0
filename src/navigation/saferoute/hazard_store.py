# hazard_store.py
# In-memory set of known hazards with spatial queries and add/remove events.
# Every query works on an atomic snapshot of the collection.

import logging
import math
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

from .events import EventBus, Listener
from .geo_utils import distance, min_distance_to_route, point_in_polygon
from .models import (
    BoundingBox, Coord, EventKind, Geometry, Hazard, HazardDraft, HazardKind,
    InvalidHazardError, PointGeometry, PolygonGeometry, RouteHazard, UpcomingHazard,
)
from .nav_config import KIND_PRIORITY, PERSISTENT_KINDS, NavConfig

logger = logging.getLogger(__name__)

IdFactory = Callable[[HazardKind, float], str]


def default_hazard_id(kind: HazardKind, timestamp: float) -> str:
    """``<kind>-<epoch ms>-<random suffix>``"""
    return f"{kind.value}-{int(timestamp * 1000)}-{uuid.uuid4().hex[:9]}"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _check_coord(coord: Coord) -> None:
    for value in (coord.lat, coord.lon):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidHazardError(f"Coordinate must be numeric: {coord}")
    if not (math.isfinite(coord.lat) and math.isfinite(coord.lon)):
        raise InvalidHazardError(f"Non-finite coordinate: {coord}")
    if not (-90.0 <= coord.lat <= 90.0 and -180.0 <= coord.lon <= 180.0):
        raise InvalidHazardError(f"Coordinate out of range: {coord}")


def _normalise_geometry(geometry: Optional[Geometry]) -> Geometry:
    if isinstance(geometry, PointGeometry):
        _check_coord(geometry.coord)
        return geometry

    if isinstance(geometry, PolygonGeometry):
        ring = tuple(geometry.ring)
        for coord in ring:
            _check_coord(coord)
        if len(set(ring)) < 3:
            raise InvalidHazardError("A polygon needs at least 3 distinct vertices.")
        if ring[0] != ring[-1]:
            ring = ring + (ring[0],)
        return PolygonGeometry(ring)

    raise InvalidHazardError("Hazard geometry is missing or unsupported.")


def _clamp_severity(value: Any) -> int:
    if value is None:
        return 1
    try:
        severity = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidHazardError(f"Severity must be a number, got {value!r}") from e
    # 0 counts as "not given", like a missing value
    if severity == 0:
        severity = 1
    return max(1, min(3, severity))


def _polygon_near_route(ring: Sequence[Coord], coords: Sequence[Coord], buffer_m: float) -> bool:
    """Any route vertex inside the ring, or any ring vertex within buffer of the route."""
    for coord in coords:
        if point_in_polygon(coord, ring):
            return True
    for vertex in ring:
        if min_distance_to_route(vertex, coords) <= buffer_m:
            return True
    return False


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class HazardStore:
    """
    Owns the hazards known to this process.

    Args:
        config:     NavConfig instance.
        clock:      Wall clock returning epoch seconds (stamps and expiry).
        id_factory: Callable(kind, timestamp) -> unique id.
        bus:        EventBus to publish HAZARD_ADDED / HAZARD_REMOVED on.
    """

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        clock: Callable[[], float] = time.time,
        id_factory: Optional[IdFactory] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config or NavConfig()
        self._clock = clock
        self._id_factory = id_factory or default_hazard_id
        self._bus = bus if bus is not None else EventBus("hazards")
        self._hazards: Dict[str, Hazard] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self._bus.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._bus.unsubscribe(listener)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, draft: HazardDraft) -> Optional[Hazard]:
        """
        Validate, de-duplicate and store a hazard report.

        Returns:
            The stored Hazard, or None if the report was invalid or a duplicate.
        """
        try:
            if not isinstance(draft.kind, HazardKind):
                raise InvalidHazardError(f"Unknown hazard kind: {draft.kind!r}")
            geometry = _normalise_geometry(draft.geometry)
            severity = _clamp_severity(draft.severity)
        except InvalidHazardError as e:
            logger.warning(f"Rejected hazard report: {e}")
            return None

        with self._lock:
            if isinstance(geometry, PointGeometry) and self._has_duplicate(draft.kind, geometry.coord):
                logger.info(f"Duplicate {draft.kind.value} near {geometry.coord}, skipping.")
                return None

            now = self._clock()
            hazard_id = self._id_factory(draft.kind, now)
            if hazard_id in self._hazards:
                logger.warning(f"Hazard id collision on {hazard_id}, report dropped.")
                return None

            hazard = Hazard(
                id=hazard_id,
                kind=draft.kind,
                geometry=geometry,
                severity=severity,
                description=draft.description or f"Reported {draft.kind.value}",
                updated_at=now,
            )
            self._hazards[hazard.id] = hazard

        logger.info(f"Hazard added: {hazard.id} ({hazard.kind.value}, severity {hazard.severity}).")
        self._bus.emit(EventKind.HAZARD_ADDED, hazard)
        return hazard

    def add_geojson(self, feature: Dict[str, Any]) -> Optional[Hazard]:
        """Add a hazard given in feed form; malformed features return None."""
        try:
            draft = HazardDraft.from_geojson(feature)
        except InvalidHazardError as e:
            logger.warning(f"Rejected hazard feature: {e}")
            return None
        return self.add(draft)

    def _has_duplicate(self, kind: HazardKind, coord: Coord) -> bool:
        # Caller holds the lock
        for existing in self._hazards.values():
            if existing.kind != kind or not isinstance(existing.geometry, PointGeometry):
                continue
            if distance(existing.geometry.coord, coord) < self.config.duplicate_radius_m:
                return True
        return False

    def remove(self, hazard_id: str) -> Optional[Hazard]:
        """Remove a hazard by id; returns it, or None if it was not found."""
        with self._lock:
            removed = self._hazards.pop(hazard_id, None)
        if removed is None:
            return None
        logger.info(f"Hazard removed: {hazard_id}.")
        self._bus.emit(EventKind.HAZARD_REMOVED, removed)
        return removed

    def sweep_expired(self) -> List[Hazard]:
        """Drop non-persistent hazards older than the retention window."""
        cutoff = self._clock() - self.config.retention_s
        with self._lock:
            expired = [
                h for h in self._hazards.values()
                if h.kind not in PERSISTENT_KINDS and h.updated_at < cutoff
            ]
            for hazard in expired:
                del self._hazards[hazard.id]

        if expired:
            logger.info(f"Expiry sweep removed {len(expired)} hazard(s).")
        for hazard in expired:
            self._bus.emit(EventKind.HAZARD_REMOVED, hazard)
        return expired

    def start_background(self, scheduler):
        """Schedule the periodic expiry sweep; returns the task handle."""
        return scheduler.every(self.config.sweep_interval_s, self.sweep_expired, name="hazard-expiry")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, hazard_id: str) -> Optional[Hazard]:
        with self._lock:
            return self._hazards.get(hazard_id)

    def all(self) -> List[Hazard]:
        """Snapshot of every hazard, in insertion order."""
        with self._lock:
            return list(self._hazards.values())

    def by_kind(self, kind: HazardKind) -> List[Hazard]:
        return [h for h in self.all() if h.kind == kind]

    def __len__(self) -> int:
        with self._lock:
            return len(self._hazards)

    # ------------------------------------------------------------------
    # Spatial queries
    # ------------------------------------------------------------------

    def query_within_radius(self, center: Coord, radius_m: Optional[float] = None) -> List[Hazard]:
        """Points within radius; polygons if any vertex is within radius."""
        if radius_m is None:
            radius_m = self.config.nearby_radius_m
        return [
            h for h in self.all()
            if any(distance(center, v) <= radius_m for v in h.geometry.vertices)
        ]

    def query_in_bounds(self, bbox: BoundingBox) -> List[Hazard]:
        """Points inside bbox; polygons if any vertex is inside."""
        return [
            h for h in self.all()
            if any(bbox.contains(v) for v in h.geometry.vertices)
        ]

    def query_along_route(
        self,
        coords: Sequence[Coord],
        buffer_m: Optional[float] = None,
    ) -> List[RouteHazard]:
        """
        Hazards within buffer_m of a route polyline.

        Ordered by kind priority (highest first), then by distance to route.
        Qualifying polygons are reported at distance 0.
        """
        if buffer_m is None:
            buffer_m = self.config.hazard_buffer_m
        coords = list(coords)
        if len(coords) < 2:
            return []

        found: List[RouteHazard] = []
        for hazard in self.all():
            if isinstance(hazard.geometry, PointGeometry):
                d = min_distance_to_route(hazard.geometry.coord, coords)
                if d <= buffer_m:
                    found.append(RouteHazard(hazard, d))
            elif _polygon_near_route(hazard.geometry.ring, coords, buffer_m):
                found.append(RouteHazard(hazard, 0.0))

        found.sort(key=lambda rh: (-KIND_PRIORITY.get(rh.hazard.kind, 0), rh.distance_to_route))
        return found

    def upcoming_hazards(
        self,
        position: Coord,
        coords: Sequence[Coord],
        look_ahead_m: Optional[float] = None,
        buffer_m: Optional[float] = None,
    ) -> List[UpcomingHazard]:
        """Point hazards along the route within look_ahead_m of the agent, nearest first."""
        if look_ahead_m is None:
            look_ahead_m = self.config.look_ahead_m
        if buffer_m is None:
            buffer_m = self.config.upcoming_buffer_m

        upcoming: List[UpcomingHazard] = []
        for rh in self.query_along_route(coords, buffer_m):
            if not rh.hazard.is_point:
                continue
            d = distance(position, rh.hazard.geometry.coord)
            if d <= look_ahead_m:
                upcoming.append(UpcomingHazard(rh.hazard, d))

        upcoming.sort(key=lambda u: u.distance_from_agent)
        return upcoming
