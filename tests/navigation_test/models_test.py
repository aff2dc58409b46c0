import pytest

from navigation.saferoute.models import (
    Coord, Hazard, HazardDraft, HazardKind, InvalidHazardError, PointGeometry,
    PolygonGeometry, geometry_from_geojson,
)


def test_point_geometry_round_trip_uses_lon_lat():
    geom = geometry_from_geojson({"type": "Point", "coordinates": [72.8777, 19.0760]})
    assert geom == PointGeometry(Coord(19.0760, 72.8777))
    assert geom.to_geojson() == {"type": "Point", "coordinates": (72.8777, 19.0760)}


def test_polygon_keeps_exterior_ring_only():
    shell = [[72.86, 19.04], [72.87, 19.04], [72.87, 19.05], [72.86, 19.05], [72.86, 19.04]]
    hole = [[72.862, 19.042], [72.864, 19.042], [72.864, 19.044], [72.862, 19.042]]
    geom = geometry_from_geojson({"type": "Polygon", "coordinates": [shell, hole]})

    assert isinstance(geom, PolygonGeometry)
    assert geom.ring[0] == Coord(19.04, 72.86)
    assert len(geom.ring) == 5


@pytest.mark.parametrize("data", [
    {"type": "LineString", "coordinates": [[72.8, 19.0], [72.9, 19.1]]},
    {"type": "Point"},
    {"type": "Point", "coordinates": []},
    {"coordinates": [72.8, 19.0]},
])
def test_bad_geometries(data):
    with pytest.raises(InvalidHazardError):
        geometry_from_geojson(data)


def test_draft_from_feed_feature():
    draft = HazardDraft.from_geojson({
        "type": "pothole",
        "geometry": {"type": "Point", "coordinates": [72.8443, 19.0186]},
        "properties": {"severity": 2, "description": "Large pothole cluster"},
    })
    assert draft.kind is HazardKind.POTHOLE
    assert draft.geometry == PointGeometry(Coord(19.0186, 72.8443))
    assert draft.severity == 2
    assert draft.description == "Large pothole cluster"


@pytest.mark.parametrize("feature", [
    {"type": "flood", "geometry": {"type": "Point", "coordinates": [72.8, 19.0]}, "properties": {}},
    {"type": "pothole", "properties": {}},
    {"type": "pothole", "geometry": {"type": "Point", "coordinates": [72.8, 19.0]}},
])
def test_draft_rejects_incomplete_features(feature):
    with pytest.raises(InvalidHazardError):
        HazardDraft.from_geojson(feature)


def test_hazard_serialises_to_feed_form():
    hazard = Hazard(
        id="accident-1", kind=HazardKind.ACCIDENT,
        geometry=PointGeometry(Coord(19.0760, 72.8777)),
        severity=3, description="Multi-vehicle collision", updated_at=12.0,
    )
    data = hazard.to_geojson()
    assert data["type"] == "accident"
    assert data["geometry"]["type"] == "Point"
    assert data["properties"] == {
        "severity": 3, "description": "Multi-vehicle collision", "updatedAt": 12.0,
    }
    assert hazard.is_point
