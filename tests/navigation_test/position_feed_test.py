import threading
import time

import pytest

from navigation.saferoute.models import PositionSample
from navigation.saferoute.nav_config import NavConfig
from navigation.saferoute.position_feed import PositionFeed, SpeedEstimator

# 0.001° of latitude
STEP_M = 111.19


def sample(ts, lat=19.0, lon=72.8, speed=None):
    return PositionSample(lat=lat, lon=lon, timestamp=ts, speed=speed)


# ---------------------------------------------------------------------------
# PositionFeed
# ---------------------------------------------------------------------------

def test_newer_sample_replaces_pending_one():
    feed = PositionFeed(lambda s: None)
    feed.push(sample(1.0))
    feed.push(sample(2.0))
    feed.push(sample(3.0))

    assert feed.take(timeout=0).timestamp == 3.0
    assert feed.dropped == 2
    assert feed.take(timeout=0) is None


def test_closed_feed_rejects_and_discards():
    feed = PositionFeed(lambda s: None)
    feed.push(sample(1.0))
    feed.close()

    assert feed.closed
    assert feed.take(timeout=0) is None
    assert feed.push(sample(2.0)) is False


def test_worker_delivers_and_survives_handler_errors():
    seen = []
    done = threading.Event()

    def handler(s):
        seen.append(s.timestamp)
        if s.timestamp == 1.0:
            raise RuntimeError("bad fix")
        done.set()

    feed = PositionFeed(handler)
    feed.start()
    feed.push(sample(1.0))
    # Wait until the first sample was taken before pushing the next one
    for _ in range(200):
        if seen:
            break
        time.sleep(0.01)
    feed.push(sample(2.0))

    assert done.wait(timeout=2.0)
    feed.close()
    assert seen == [1.0, 2.0]


def test_close_from_handler_does_not_deadlock():
    closed = threading.Event()
    holder = {}

    def handler(s):
        holder["feed"].close()
        closed.set()

    feed = PositionFeed(handler)
    holder["feed"] = feed
    feed.start()
    feed.push(sample(1.0))

    assert closed.wait(timeout=2.0)
    feed.close()
    assert feed.closed


# ---------------------------------------------------------------------------
# SpeedEstimator
# ---------------------------------------------------------------------------

def test_reported_speed_is_authoritative():
    est = SpeedEstimator()
    assert est.update(sample(0.0, speed=12.0)) == 12.0
    # Zero is a valid reading
    assert est.update(sample(1.0, lat=19.01, speed=0.0)) == 0.0


def test_speed_derived_then_smoothed():
    est = SpeedEstimator()
    assert est.update(sample(0.0)) == 0.0
    first = est.update(sample(9.0, lat=19.001))   # 9 s for ~111 m
    assert first == pytest.approx(STEP_M / 9, rel=1e-3)

    second = est.update(sample(13.0, lat=19.002))  # 4 s for ~111 m
    assert second == pytest.approx(0.7 * first + 0.3 * STEP_M / 4, rel=1e-3)


def test_intervals_outside_window_keep_previous_speed():
    est = SpeedEstimator()
    est.update(sample(0.0, speed=5.0))
    # Negative speed means "not given"; 0.2 s is too short
    assert est.update(sample(0.2, lat=19.001, speed=-1.0)) == 5.0
    # 30 s is too long
    assert est.update(sample(30.2, lat=19.002)) == 5.0


def test_speed_is_clamped():
    est = SpeedEstimator(NavConfig(max_speed_kmh=120.0))
    assert est.update(sample(0.0, speed=100.0)) == pytest.approx(120 / 3.6)
    est.reset()
    assert est.speed == 0.0
