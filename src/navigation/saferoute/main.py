# main.py
# Entry point: simulates a drive across Mumbai, feeding positions into
# NavigationController while hazards are seeded, generated and expired.
# In production, replace the simulated positions with your real GPS source.
#
# Routing provider: set ORS_API_KEY (env or .env) for OpenRouteService,
# or SAFEROUTE_OSM_FILE=<map.osm> for offline routing. With neither, every
# route is the straight-line fallback.

import logging
import os
import time
from typing import Any, List, Optional, Tuple

from .graph_router import GraphRouter
from .hazard_simulator import MUMBAI_CENTER, SyntheticHazardGenerator, seed_store
from .hazard_store import HazardStore
from .models import Coord, EventKind, PositionSample
from .nav_config import NavConfig
from .nav_logger import NavLogger
from .navigator import NavigationController, RouteUnavailableError
from .ors_client import ORSClient
from .osm_graph import load_road_graph
from .routing_engine import RoutingEngine
from .scheduler import ThreadScheduler

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Config: tweak thresholds or paths here, not inside the modules
# ------------------------------------------------------------------
config = NavConfig(
    deviation_threshold_m=100.0,
    reroute_cooldown_s=5.0,
    log_dir="logs",
)

# ------------------------------------------------------------------
# Simulation coordinates (central Mumbai → Sion)
# ------------------------------------------------------------------
ORIGIN      = MUMBAI_CENTER
DESTINATION = Coord(19.0436, 72.8649)


def build_system(
    config: NavConfig,
    osm_file: Optional[str] = None,
) -> Tuple[HazardStore, RoutingEngine, NavigationController]:
    """
    Compose store, engine and controller around the configured provider.

    Args:
        config:   Shared NavConfig.
        osm_file: Optional .osm map for offline routing.
    """
    if osm_file:
        provider = GraphRouter(load_road_graph(osm_file))
    elif os.getenv("ORS_API_KEY"):
        provider = ORSClient()
    else:
        logger.warning("No routing provider configured, using fallback routes only.")
        provider = None

    store = HazardStore(config)
    engine = RoutingEngine(provider, config)
    controller = NavigationController(store, engine, config)
    return store, engine, controller


def simulated_positions(route_coords: List[Coord], start_ts: float) -> List[PositionSample]:
    """One sample per route vertex, with a detour off the route halfway."""
    samples = []
    for i, coord in enumerate(route_coords):
        if i == len(route_coords) // 2:
            samples.append(PositionSample(coord.lat, coord.lon + 0.002, start_ts + i))
        samples.append(PositionSample(coord.lat, coord.lon, start_ts + i + 0.5))
    return samples


def on_event(kind: EventKind, payload: Any) -> None:
    if kind is EventKind.POSITION_UPDATED:
        stats = payload["stats"]
        print(
            f"  {payload['position']} → {stats.distance_remaining_m} m left, "
            f"{stats.route_progress:.0%} done, {len(stats.upcoming_hazards)} hazard(s) ahead"
            + ("  ⚠ off route" if payload["is_off_route"] else "")
        )
    elif kind is EventKind.ROUTE_UPDATED:
        print(f"  ↻ Route updated ({payload['reason']}): {int(payload['route'].distance_m)} m")
    elif kind is EventKind.DESTINATION_REACHED:
        print("  ✓ Destination reached.")


def main() -> None:
    # ------------------------------------------------------------------
    # Logging setup: configure once here, all modules inherit
    # ------------------------------------------------------------------
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # 1. Boot system and hazard feed
    store, engine, nav = build_system(config, os.getenv("SAFEROUTE_OSM_FILE"))
    seed_store(store)

    scheduler = ThreadScheduler()
    store.start_background(scheduler)
    SyntheticHazardGenerator(store).start(scheduler)

    session_log = NavLogger(config)
    nav.subscribe(session_log)
    nav.subscribe(on_event)
    store.subscribe(session_log)

    # 2. Request a route
    try:
        route = nav.start(DESTINATION, ORIGIN)
    except RouteUnavailableError as e:
        print(f"[Main] Could not start navigation: {e}")
        scheduler.shutdown()
        return

    print(f"[Main] Route {route.id}: {int(route.distance_m)} m, safety score {route.safety_score:.1f}")
    for rh in nav.route_hazards():
        print(f"  hazard on route: {rh.hazard.kind.value} ({int(rh.distance_to_route)} m) {rh.hazard.description}")

    print("\n--- GPS Loop Active ---")

    # 3. GPS loop: replace with real GPS feed in production
    for sample in simulated_positions(list(route.coordinates), time.time()):
        if not nav.push_position(sample):
            break
        # Simulate GPS poll interval (remove in real use)
        time.sleep(0.2)

    nav.stop()
    scheduler.shutdown()

    print("\n--- Session complete ---")
    print(f"    Log files written to: {config.log_dir}/")


if __name__ == "__main__":
    main()
