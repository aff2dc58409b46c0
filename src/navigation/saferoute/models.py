# models.py
# Shared data structures and enums used across all modules.

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from shapely.errors import ShapelyError
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry import mapping, shape


class InvalidHazardError(ValueError):
    """Raised when a hazard report cannot be turned into a valid hazard."""


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable geographic coordinate."""
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True)
class BoundingBox:
    """Viewport-style bounds in decimal degrees."""
    north: float
    south: float
    east: float
    west: float

    def contains(self, coord: Coord) -> bool:
        return (
            self.south <= coord.lat <= self.north
            and self.west <= coord.lon <= self.east
        )


# ---------------------------------------------------------------------------
# Hazards
# ---------------------------------------------------------------------------

class HazardKind(Enum):
    ACCIDENT     = "accident"
    CONSTRUCTION = "construction"
    POTHOLE      = "pothole"
    PORTAL       = "portal"
    RISK_AREA    = "riskArea"


@dataclass(frozen=True)
class PointGeometry:
    coord: Coord

    @property
    def vertices(self) -> Tuple[Coord, ...]:
        return (self.coord,)

    def to_geojson(self) -> dict:
        return dict(mapping(ShapelyPoint(self.coord.lon, self.coord.lat)))


@dataclass(frozen=True)
class PolygonGeometry:
    """Single closed ring; first vertex equals the last."""
    ring: Tuple[Coord, ...]

    @property
    def vertices(self) -> Tuple[Coord, ...]:
        return self.ring

    def to_geojson(self) -> dict:
        shell = [(c.lon, c.lat) for c in self.ring]
        return dict(mapping(ShapelyPolygon(shell)))


Geometry = Union[PointGeometry, PolygonGeometry]


def geometry_from_geojson(data: Dict[str, Any]) -> Geometry:
    """
    Parse a GeoJSON Point or Polygon (``[lon, lat]`` order).

    Only the exterior ring of a polygon is kept.

    Raises:
        InvalidHazardError: For malformed or unsupported geometries.
    """
    try:
        geom = shape(data)
    except (ShapelyError, KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
        raise InvalidHazardError(f"Malformed geometry: {e}") from e
    if geom.is_empty:
        raise InvalidHazardError(f"Empty {geom.geom_type} geometry.")

    if geom.geom_type == "Point":
        return PointGeometry(Coord(lat=geom.y, lon=geom.x))
    if geom.geom_type == "Polygon":
        ring = tuple(Coord(lat=y, lon=x) for x, y in geom.exterior.coords)
        return PolygonGeometry(ring)
    raise InvalidHazardError(f"Unsupported geometry type: {geom.geom_type}")


@dataclass(frozen=True)
class Hazard:
    """A stored hazard. Never edited in place."""
    id: str
    kind: HazardKind
    geometry: Geometry
    severity: int
    description: str
    updated_at: float                      # epoch seconds

    @property
    def is_point(self) -> bool:
        return isinstance(self.geometry, PointGeometry)

    def to_geojson(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind.value,
            "geometry": self.geometry.to_geojson(),
            "properties": {
                "severity": self.severity,
                "description": self.description,
                "updatedAt": self.updated_at,
            },
        }


@dataclass
class HazardDraft:
    """An incoming hazard report, before validation and id stamping."""
    kind: Optional[HazardKind]
    geometry: Optional[Geometry]
    severity: Optional[int] = None
    description: Optional[str] = None

    @staticmethod
    def point(kind: HazardKind, lat: float, lon: float, **kwargs) -> "HazardDraft":
        return HazardDraft(kind=kind, geometry=PointGeometry(Coord(lat, lon)), **kwargs)

    @staticmethod
    def polygon(kind: HazardKind, ring: List[Tuple[float, float]], **kwargs) -> "HazardDraft":
        """Build from ``(lat, lon)`` pairs; an open ring is closed."""
        coords = [Coord(lat, lon) for lat, lon in ring]
        if coords and coords[0] != coords[-1]:
            coords.append(coords[0])
        return HazardDraft(kind=kind, geometry=PolygonGeometry(tuple(coords)), **kwargs)

    @staticmethod
    def from_geojson(feature: Dict[str, Any]) -> "HazardDraft":
        """
        Parse a hazard feed entry:
        ``{"type": "pothole", "geometry": {...}, "properties": {...}}``.

        Raises:
            InvalidHazardError: If kind, geometry or properties are missing or bad.
        """
        if not feature.get("type") or not feature.get("geometry") or "properties" not in feature:
            raise InvalidHazardError("Hazard feature needs type, geometry and properties.")
        try:
            kind = HazardKind(feature["type"])
        except ValueError as e:
            raise InvalidHazardError(f"Unknown hazard type: {feature['type']!r}") from e

        props = feature.get("properties") or {}
        return HazardDraft(
            kind=kind,
            geometry=geometry_from_geojson(feature["geometry"]),
            severity=props.get("severity"),
            description=props.get("description"),
        )


@dataclass(frozen=True)
class RouteHazard:
    """A hazard relevant to a route, annotated with its distance to it."""
    hazard: Hazard
    distance_to_route: float               # metres, 0 for polygons


@dataclass(frozen=True)
class UpcomingHazard:
    hazard: Hazard
    distance_from_agent: float             # metres

    def to_dict(self) -> dict:
        return {
            "id": self.hazard.id,
            "type": self.hazard.kind.value,
            "severity": self.hazard.severity,
            "description": self.hazard.description,
            "distance_from_agent": round(self.distance_from_agent, 1),
        }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Instruction:
    """A single turn-by-turn instruction."""
    text: str
    distance_m: float
    maneuver_type: str = "straight"
    duration_s: float = 0.0

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "distance_m": self.distance_m,
            "maneuver_type": self.maneuver_type,
            "duration_s": self.duration_s,
        }


@dataclass(frozen=True)
class Route:
    id: str
    coordinates: Tuple[Coord, ...]
    distance_m: float
    duration_s: float
    instructions: Tuple[Instruction, ...] = ()
    safety_score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coordinates": [c.to_dict() for c in self.coordinates],
            "distance_m": self.distance_m,
            "duration_s": self.duration_s,
            "instructions": [i.to_dict() for i in self.instructions],
            "safety_score": self.safety_score,
        }


# ---------------------------------------------------------------------------
# Live position
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositionSample:
    """One fix from the external position source."""
    lat: float
    lon: float
    timestamp: float                       # seconds
    speed: Optional[float] = None          # m/s, authoritative when >= 0
    accuracy: Optional[float] = None       # metres

    @property
    def coord(self) -> Coord:
        return Coord(self.lat, self.lon)


# ---------------------------------------------------------------------------
# Navigation status
# ---------------------------------------------------------------------------

class NavigationState(Enum):
    IDLE      = "idle"
    ACTIVE    = "active"
    REROUTING = "rerouting"
    COMPLETED = "completed"


@dataclass
class NavigationStats:
    """Derived progress numbers, recomputed on every position or route update."""
    distance_remaining_m: int = 0
    time_remaining_s: int = 0
    next_turn: Optional[Instruction] = None
    upcoming_hazards: List[UpcomingHazard] = field(default_factory=list)
    route_progress: float = 0.0            # [0, 1]
    speed_mps: float = 0.0

    def to_dict(self) -> dict:
        return {
            "distance_remaining_m": self.distance_remaining_m,
            "time_remaining_s": self.time_remaining_s,
            "next_turn": self.next_turn.to_dict() if self.next_turn else None,
            "upcoming_hazards": [h.to_dict() for h in self.upcoming_hazards],
            "route_progress": round(self.route_progress, 4),
            "speed_mps": round(self.speed_mps, 2),
        }


@dataclass(frozen=True)
class NavigationSnapshot:
    state: NavigationState
    is_rerouting: bool
    current_route: Optional[Route]
    destination: Optional[Coord]
    current_position: Optional[Coord]
    stats: NavigationStats


class EventKind(Enum):
    HAZARD_ADDED        = "hazardAdded"
    HAZARD_REMOVED      = "hazardRemoved"
    NAVIGATION_STARTED  = "navigationStarted"
    NAVIGATION_STOPPED  = "navigationStopped"
    POSITION_UPDATED    = "positionUpdated"
    POSITION_ERROR      = "positionError"
    REROUTING           = "rerouting"
    ROUTE_UPDATED       = "routeUpdated"
    REROUTE_ERROR       = "rerouteError"
    DESTINATION_REACHED = "destinationReached"
