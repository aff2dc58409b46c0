import random

from navigation.saferoute.hazard_simulator import (
    MUMBAI_CENTER, SEED_FEATURES, SyntheticHazardGenerator, seed_store,
)
from navigation.saferoute.hazard_store import HazardStore
from navigation.saferoute.models import HazardKind
from navigation.saferoute.nav_config import NavConfig
from navigation.saferoute.scheduler import ManualClock, ManualScheduler


def test_seed_store_loads_points_and_areas():
    store = HazardStore()
    added = seed_store(store)

    assert len(added) == len(SEED_FEATURES) == 11
    assert len(store.by_kind(HazardKind.RISK_AREA)) == 3
    assert len(store.by_kind(HazardKind.ACCIDENT)) == 2


def test_seed_store_skips_bad_features():
    store = HazardStore()
    added = seed_store(store, [SEED_FEATURES[0], {"type": "flood"}, SEED_FEATURES[0]])
    assert len(added) == 1


def test_generator_stays_near_center():
    store = HazardStore()
    gen = SyntheticHazardGenerator(store, spread_deg=0.2, rng=random.Random(7))
    hazards = [gen.generate_once() for _ in range(20)]

    for hazard in filter(None, hazards):
        assert hazard.kind in SyntheticHazardGenerator.KINDS
        assert abs(hazard.geometry.coord.lat - MUMBAI_CENTER.lat) <= 0.1
        assert abs(hazard.geometry.coord.lon - MUMBAI_CENTER.lon) <= 0.1
        assert 1 <= hazard.severity <= 3
    assert len(store) == len([h for h in hazards if h is not None])


def test_generator_and_expiry_on_one_schedule():
    clock = ManualClock(1_000.0)
    scheduler = ManualScheduler(clock)
    config = NavConfig(synthetic_interval_s=45, retention_s=600, sweep_interval_s=60)
    store = HazardStore(config, clock=clock)
    seed_store(store)

    SyntheticHazardGenerator(store, rng=random.Random(1)).start(scheduler)
    store.start_background(scheduler)

    scheduler.advance(45 * 4)
    assert len(store) > 11

    # Long after generation stops only the persistent risk areas remain
    scheduler.shutdown()
    store.start_background(scheduler)
    scheduler.advance(3_600)
    assert {h.kind for h in store.all()} == {HazardKind.RISK_AREA}
