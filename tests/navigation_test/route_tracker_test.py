import pytest

from navigation.saferoute.events import EventBus
from navigation.saferoute.hazard_store import HazardStore
from navigation.saferoute.models import (
    Coord, EventKind, HazardDraft, HazardKind, Instruction, Route,
)
from navigation.saferoute.route_tracker import RouteTracker

COORDS = (Coord(19.0, 72.8), Coord(19.01, 72.8), Coord(19.02, 72.8))


@pytest.fixture
def route():
    return Route(
        id="r1",
        coordinates=COORDS,
        distance_m=2224.0,
        duration_s=267.0,
        instructions=(
            Instruction("Head north", 0, "depart"),
            Instruction("Turn left onto Linking Road", 500, "left"),
        ),
    )


def test_without_route():
    tracker = RouteTracker(HazardStore())
    assert not tracker.is_active
    assert tracker.closest_point(COORDS[0]) == (0, float("inf"))

    stats = tracker.compute_stats(COORDS[0], speed_mps=2.0)
    assert stats.distance_remaining_m == 0
    assert stats.next_turn is None
    assert stats.speed_mps == 2.0


def test_stats_halfway(route):
    store = HazardStore()
    ahead = store.add(HazardDraft.point(HazardKind.POTHOLE, 19.015, 72.8))
    store.add(HazardDraft.point(HazardKind.ACCIDENT, 19.02, 72.8001))  # beyond look-ahead
    tracker = RouteTracker(store)
    tracker.load_route(route)

    stats = tracker.compute_stats(COORDS[1], speed_mps=4.0)

    assert stats.distance_remaining_m == pytest.approx(1112, abs=2)
    assert stats.route_progress == pytest.approx(0.5, abs=0.01)
    assert stats.time_remaining_s == round(stats.distance_remaining_m / tracker.config.average_speed_mps)
    assert stats.next_turn.maneuver_type == "left"
    assert [u.hazard.id for u in stats.upcoming_hazards] == [ahead.id]
    assert stats.upcoming_hazards[0].distance_from_agent == pytest.approx(556, abs=2)


def test_progress_is_clamped(route):
    tracker = RouteTracker(HazardStore())
    tracker.load_route(route)

    # Far before the start the remaining distance exceeds the route length
    assert tracker.compute_stats(Coord(18.9, 72.8)).route_progress == 0.0
    assert tracker.compute_stats(COORDS[-1]).route_progress == 1.0

    tracker.stop()
    assert tracker.route is None


def test_event_bus_isolates_failing_listeners():
    bus = EventBus("test")
    received = []

    def broken(kind, payload):
        raise RuntimeError("listener failed")

    bus.subscribe(broken)
    bus.subscribe(lambda kind, payload: received.append((kind, payload)))
    bus.emit(EventKind.REROUTING, {"reason": "manual"})

    assert received == [(EventKind.REROUTING, {"reason": "manual"})]

    bus.unsubscribe(broken)
    bus.unsubscribe(broken)
    assert len(bus) == 1
