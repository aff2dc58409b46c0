import math

import pytest

from navigation.saferoute.geo_utils import (
    bearing, bearing_to_compass, closest_vertex, distance, distance_to_segment,
    get_turn_instruction, haversine_distance, interpolate, min_distance_to_route,
    path_length, point_in_polygon, segment_intersects_polygon, segments_intersect,
)
from navigation.saferoute.models import Coord

# One degree of latitude on the 6371 km sphere
DEG_M = 6_371_000.0 * math.pi / 180


@pytest.fixture
def square():
    """0.01° square with its south-west corner at the origin, closed."""
    return [
        Coord(0.0, 0.0), Coord(0.0, 0.01), Coord(0.01, 0.01),
        Coord(0.01, 0.0), Coord(0.0, 0.0),
    ]


def test_haversine_basics():
    assert haversine_distance(19.076, 72.8777, 19.076, 72.8777) == 0.0
    assert haversine_distance(0, 0, 1, 0) == pytest.approx(DEG_M, rel=1e-9)
    a, b = Coord(19.0760, 72.8777), Coord(19.0436, 72.8649)
    assert distance(a, b) == pytest.approx(distance(b, a))
    assert 3500 < distance(a, b) < 4000


@pytest.mark.parametrize("a, b, c", [
    (Coord(19.0760, 72.8777), Coord(19.0436, 72.8649), Coord(19.1136, 72.8697)),
    (Coord(0.0, 0.0), Coord(0.0, 90.0), Coord(45.0, 45.0)),
    (Coord(-33.86, 151.21), Coord(51.51, -0.13), Coord(40.71, -74.01)),
])
def test_distance_triangle_inequality(a, b, c):
    assert distance(a, c) <= distance(a, b) + distance(b, c) + 1e-6
    assert distance(a, b) <= distance(a, c) + distance(c, b) + 1e-6


def test_bearing_and_compass():
    origin = Coord(0.0, 0.0)
    assert bearing(origin, Coord(1.0, 0.0)) == pytest.approx(0.0)
    assert bearing(origin, Coord(0.0, 1.0)) == pytest.approx(90.0)
    assert bearing(origin, Coord(-1.0, 0.0)) == pytest.approx(180.0)

    assert bearing_to_compass(0) == "N"
    assert bearing_to_compass(22) == "N"
    assert bearing_to_compass(44) == "NE"
    assert bearing_to_compass(180) == "S"
    assert bearing_to_compass(350) == "N"
    assert bearing_to_compass(270) == "W"


@pytest.mark.parametrize("diff, expected", [
    (90, "Turn sharp right"),
    (20, "Turn right"),
    (5, "Go straight"),
    (-20, "Turn left"),
    (-90, "Turn sharp left"),
    (350, "Go straight"),
    (300, "Turn sharp left"),
])
def test_turn_instruction(diff, expected):
    assert get_turn_instruction(diff) == expected


def test_interpolate_midpoint():
    mid = interpolate(Coord(0.0, 0.0), Coord(2.0, 4.0), 0.5)
    assert mid == Coord(1.0, 2.0)


def test_distance_to_segment():
    start, end = Coord(0.0, 0.0), Coord(0.0, 0.01)

    # Perpendicular from the middle of the segment
    assert distance_to_segment(Coord(0.001, 0.005), start, end) == pytest.approx(0.001 * DEG_M, rel=1e-6)
    # On the segment
    assert distance_to_segment(Coord(0.0, 0.005), start, end) == pytest.approx(0.0, abs=1e-6)
    # Past the end the projection is clamped
    beyond = Coord(0.0, 0.02)
    assert distance_to_segment(beyond, start, end) == pytest.approx(distance(beyond, end))


def test_zero_length_segment_uses_start():
    p, s = Coord(0.001, 0.0), Coord(0.0, 0.0)
    assert distance_to_segment(p, s, s) == pytest.approx(distance(p, s))


def test_min_distance_to_route_needs_two_points():
    assert min_distance_to_route(Coord(0, 0), [Coord(0, 0)]) == math.inf
    route = [Coord(0.0, 0.0), Coord(0.0, 0.01), Coord(0.01, 0.01)]
    assert min_distance_to_route(Coord(0.005, 0.0101), route) == pytest.approx(0.0001 * DEG_M, rel=1e-3)


def test_point_in_polygon(square):
    assert point_in_polygon(Coord(0.005, 0.005), square)
    assert point_in_polygon(Coord(0.0001, 0.0099), square)
    assert not point_in_polygon(Coord(0.5, 0.5), square)
    assert not point_in_polygon(Coord(-0.005, 0.005), square)


def test_segments_intersect():
    assert segments_intersect(Coord(0, 0), Coord(1, 1), Coord(0, 1), Coord(1, 0))
    assert not segments_intersect(Coord(0, 0), Coord(0, 1), Coord(1, 0), Coord(1, 1))
    # Colinear and overlapping
    assert segments_intersect(Coord(0, 0), Coord(0, 2), Coord(0, 1), Coord(0, 3))


def test_segment_through_polygon_without_inner_endpoints(square):
    start, end = Coord(0.005, -0.01), Coord(0.005, 0.02)
    assert not point_in_polygon(start, square)
    assert not point_in_polygon(end, square)
    assert segment_intersects_polygon(start, end, square)
    assert not segment_intersects_polygon(Coord(0.02, -0.01), Coord(0.02, 0.02), square)


def test_closest_vertex():
    coords = [Coord(0.0, 0.0), Coord(0.0, 0.01), Coord(0.0, 0.02)]
    index, d = closest_vertex(Coord(0.001, 0.011), coords)
    assert index == 1
    assert d == pytest.approx(distance(Coord(0.001, 0.011), coords[1]), rel=1e-9)

    with pytest.raises(ValueError):
        closest_vertex(Coord(0, 0), [])


def test_path_length():
    coords = [Coord(0.0, 0.0), Coord(0.01, 0.0), Coord(0.02, 0.0)]
    assert path_length(coords) == pytest.approx(0.02 * DEG_M, rel=1e-9)
    assert path_length(coords, 1) == pytest.approx(0.01 * DEG_M, rel=1e-9)
    assert path_length(coords, 2) == 0.0
