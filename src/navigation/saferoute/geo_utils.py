# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects; only depends on the Coord model.

import math
from typing import Sequence, Tuple

import numpy as np

from .models import Coord


EARTH_RADIUS_M = 6_371_000.0

COMPASS_POINTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points in metres.

    Args:
        lat1, lon1: Origin in decimal degrees.
        lat2, lon2: Destination in decimal degrees.

    Returns:
        Distance in metres.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance(a: Coord, b: Coord) -> float:
    """Haversine distance between two coordinates in metres."""
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def haversine_to_many(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Vectorised haversine from one point to many points, in metres."""
    rlat = math.radians(lat)
    rlats = np.radians(lats)
    d_lat = rlats - rlat
    d_lon = np.radians(lons - lon)
    a = np.sin(d_lat / 2) ** 2 + math.cos(rlat) * np.cos(rlats) * np.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Forward azimuth (bearing) from point 1 to point 2 in degrees [0, 360).

    Args:
        lat1, lon1: Origin in decimal degrees.
        lat2, lon2: Destination in decimal degrees.

    Returns:
        Bearing in degrees.
    """
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)
    d_lon = rlon2 - rlon1
    y = math.sin(d_lon) * math.cos(rlat2)
    x = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def bearing(a: Coord, b: Coord) -> float:
    return calculate_bearing(a.lat, a.lon, b.lat, b.lon)


def bearing_to_compass(bearing_deg: float) -> str:
    """Map a bearing to one of the 8 compass points."""
    return COMPASS_POINTS[int(math.floor(bearing_deg / 45.0 + 0.5)) % 8]


def get_turn_instruction(bearing_diff: float) -> str:
    """
    Human-readable turn instruction derived from the change in bearing.

    Args:
        bearing_diff: Difference between consecutive bearings in degrees.

    Returns:
        Turn instruction string.
    """
    diff = (bearing_diff + 180) % 360 - 180
    if diff > 45:
        return "Turn sharp right"
    elif diff > 10:
        return "Turn right"
    elif diff < -45:
        return "Turn sharp left"
    elif diff < -10:
        return "Turn left"
    return "Go straight"


def interpolate(a: Coord, b: Coord, fraction: float) -> Coord:
    """Linear interpolation in degree space."""
    return Coord(
        lat=a.lat + (b.lat - a.lat) * fraction,
        lon=a.lon + (b.lon - a.lon) * fraction,
    )


# ---------------------------------------------------------------------------
# Segment / polygon tests
# ---------------------------------------------------------------------------

def distance_to_segment(point: Coord, seg_start: Coord, seg_end: Coord) -> float:
    """
    Distance in metres from point to the segment seg_start→seg_end.

    The projection uses a planar dot product in (lat, lon) degrees, clamped
    to the segment, which is only accurate at urban scale.
    """
    a = point.lat - seg_start.lat
    b = point.lon - seg_start.lon
    c = seg_end.lat - seg_start.lat
    d = seg_end.lon - seg_start.lon

    len_sq = c * c + d * d
    if len_sq == 0:
        return distance(point, seg_start)

    t = max(0.0, min(1.0, (a * c + b * d) / len_sq))
    projected = Coord(seg_start.lat + t * c, seg_start.lon + t * d)
    return distance(point, projected)


def min_distance_to_route(point: Coord, coords: Sequence[Coord]) -> float:
    """Smallest segment distance from point to a polyline (inf if < 2 coords)."""
    best = math.inf
    for i in range(len(coords) - 1):
        best = min(best, distance_to_segment(point, coords[i], coords[i + 1]))
    return best


def point_in_polygon(point: Coord, ring: Sequence[Coord]) -> bool:
    """Even-odd ray casting; x = lon, y = lat. The ring is treated as closed."""
    inside = False
    x, y = point.lon, point.lat
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i].lon, ring[i].lat
        xj, yj = ring[j].lon, ring[j].lat
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def _orientation(p: Coord, q: Coord, r: Coord) -> int:
    """0 = colinear, 1 = clockwise, 2 = counter-clockwise."""
    val = (q.lon - p.lon) * (r.lat - q.lat) - (q.lat - p.lat) * (r.lon - q.lon)
    if val == 0:
        return 0
    return 1 if val > 0 else 2


def _on_segment(p: Coord, q: Coord, r: Coord) -> bool:
    """True if q lies within the bounding box of p→r."""
    return (
        min(p.lon, r.lon) <= q.lon <= max(p.lon, r.lon)
        and min(p.lat, r.lat) <= q.lat <= max(p.lat, r.lat)
    )


def segments_intersect(p1: Coord, q1: Coord, p2: Coord, q2: Coord) -> bool:
    """Classic orientation test with the colinear on-segment fallback."""
    o1 = _orientation(p1, q1, p2)
    o2 = _orientation(p1, q1, q2)
    o3 = _orientation(p2, q2, p1)
    o4 = _orientation(p2, q2, q1)

    if o1 != o2 and o3 != o4:
        return True

    if o1 == 0 and _on_segment(p1, p2, q1):
        return True
    if o2 == 0 and _on_segment(p1, q2, q1):
        return True
    if o3 == 0 and _on_segment(p2, p1, q2):
        return True
    if o4 == 0 and _on_segment(p2, q1, q2):
        return True
    return False


def segment_intersects_polygon(seg_start: Coord, seg_end: Coord, ring: Sequence[Coord]) -> bool:
    """True if either endpoint is inside the ring or the segment crosses an edge."""
    if point_in_polygon(seg_start, ring) or point_in_polygon(seg_end, ring):
        return True
    for i in range(len(ring)):
        if segments_intersect(seg_start, seg_end, ring[i], ring[(i + 1) % len(ring)]):
            return True
    return False


# ---------------------------------------------------------------------------
# Polyline helpers
# ---------------------------------------------------------------------------

def closest_vertex(point: Coord, coords: Sequence[Coord]) -> Tuple[int, float]:
    """
    Index of the polyline vertex nearest to point and its distance in metres.

    Raises:
        ValueError: If coords is empty.
    """
    if not coords:
        raise ValueError("Cannot search an empty polyline.")
    lats = np.fromiter((c.lat for c in coords), dtype=float, count=len(coords))
    lons = np.fromiter((c.lon for c in coords), dtype=float, count=len(coords))
    dists = haversine_to_many(point.lat, point.lon, lats, lons)
    index = int(np.argmin(dists))
    return index, float(dists[index])


def path_length(coords: Sequence[Coord], start_index: int = 0) -> float:
    """Sum of segment lengths from start_index to the end of the polyline."""
    total = 0.0
    for i in range(start_index, len(coords) - 1):
        total += distance(coords[i], coords[i + 1])
    return total
