import json

import pytest

from navigation.saferoute.hazard_store import HazardStore
from navigation.saferoute.models import Coord, EventKind, HazardDraft, HazardKind, PositionSample
from navigation.saferoute.nav_config import NavConfig
from navigation.saferoute.nav_logger import NavLogger, to_jsonable
from navigation.saferoute.navigator import NavigationController
from navigation.saferoute.routing_engine import RoutingEngine


@pytest.fixture
def config(tmp_path):
    return NavConfig(log_dir=str(tmp_path / "logs"))


def read_lines(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_session_is_logged(config):
    store = HazardStore(config)
    nav = NavigationController(store, RoutingEngine(config=config), config)
    session_log = NavLogger(config)
    nav.subscribe(session_log)
    store.subscribe(session_log)

    store.add(HazardDraft.point(HazardKind.POTHOLE, 19.0700, 72.8750))
    route = nav.start(Coord(19.0436, 72.8649), Coord(19.0760, 72.8777))
    on_route = route.coordinates[1]
    nav.update_position(PositionSample(on_route.lat, on_route.lon, timestamp=1.0))
    nav.report_position_error(TimeoutError("GPS timeout"))
    nav.stop()

    entries = read_lines(config.session_filepath)
    assert [e["event"] for e in entries] == [
        "hazardAdded", "navigationStarted", "positionUpdated", "positionError", "navigationStopped",
    ]
    assert entries[0]["data"]["type"] == "pothole"
    assert entries[1]["data"]["route"]["id"] == route.id
    assert entries[2]["data"]["position"] == on_route.to_dict()
    assert entries[3]["data"] == "TimeoutError: GPS timeout"
    assert entries[4]["data"] is None

    with open(config.route_filepath, encoding="utf-8") as f:
        saved = json.load(f)
    assert saved["route"]["id"] == route.id
    assert len(saved["route"]["coordinates"]) == len(route.coordinates)


def test_write_failures_are_logged_not_raised(config, tmp_path, caplog):
    logger = NavLogger(config)
    # A directory where the route file should be
    config.route_filename = "blocked"
    (tmp_path / "logs" / "blocked").mkdir()
    route = RoutingEngine().create_fallback_route(Coord(19.0, 72.8), Coord(19.01, 72.8))

    assert logger.save_route(route) is False
    assert "Failed to save route" in caplog.text


def test_to_jsonable_handles_nested_values():
    data = to_jsonable({"a": [Coord(1.0, 2.0), (3, "x")], "b": object()})
    assert data["a"] == [{"lat": 1.0, "lon": 2.0}, [3, "x"]]
    assert isinstance(data["b"], str)
