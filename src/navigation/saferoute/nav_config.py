# nav_config.py
# All tuneable constants in one place.
# Pass a NavConfig instance to every component that needs settings.

import os
from dataclasses import dataclass

from .models import HazardKind


# ---------------------------------------------------------------------------
# Hazard kind tables
# ---------------------------------------------------------------------------

# Higher value = listed first, scored hardest
KIND_PRIORITY: dict = {
    HazardKind.RISK_AREA:    5,
    HazardKind.ACCIDENT:     4,
    HazardKind.CONSTRUCTION: 3,
    HazardKind.POTHOLE:      2,
    HazardKind.PORTAL:       1,
}

SAFETY_WEIGHTS: dict = {
    HazardKind.RISK_AREA:    50.0,
    HazardKind.ACCIDENT:     30.0,
    HazardKind.CONSTRUCTION: 20.0,
    HazardKind.POTHOLE:      10.0,
    HazardKind.PORTAL:       5.0,
}

# Kinds the expiry sweep never removes
PERSISTENT_KINDS: frozenset = frozenset({HazardKind.RISK_AREA})


# ---------------------------------------------------------------------------
# Road type constants (used by the offline OSM graph)
# ---------------------------------------------------------------------------

DRIVABLE_TYPES: frozenset = frozenset({
    'motorway', 'motorway_link', 'trunk', 'trunk_link',
    'primary', 'primary_link', 'secondary', 'secondary_link',
    'tertiary', 'tertiary_link', 'unclassified', 'residential',
    'living_street', 'service',
})

DEFAULT_SPEEDS_KMH: dict = {
    'motorway': 90.0, 'motorway_link': 50.0,
    'trunk': 70.0, 'trunk_link': 40.0,
    'primary': 50.0, 'primary_link': 40.0,
    'secondary': 40.0, 'secondary_link': 30.0,
    'tertiary': 35.0, 'tertiary_link': 30.0,
    'unclassified': 30.0, 'residential': 25.0,
    'living_street': 10.0, 'service': 15.0,
}

FALLBACK_ROAD_SPEED_KMH: float = 30.0


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class NavConfig:
    # Deviation / rerouting
    deviation_threshold_m: float = 100.0
    reroute_cooldown_s: float = 5.0        # monotonic clock, independent of GPS rate
    arrival_threshold_m: float = 50.0

    # Hazards
    hazard_buffer_m: float = 100.0         # route buffer for scoring and route hazards
    upcoming_buffer_m: float = 50.0        # route buffer for the upcoming-hazard feed
    look_ahead_m: float = 1000.0
    nearby_radius_m: float = 1000.0
    duplicate_radius_m: float = 100.0
    retention_s: float = 600.0
    sweep_interval_s: float = 60.0
    synthetic_interval_s: float = 45.0

    # Routing
    alternatives: int = 3
    score_tie_tolerance: float = 5.0
    fallback_speed_mps: float = 13.89      # ~50 km/h
    fallback_waypoint_spacing_m: float = 1000.0

    # Progress / speed
    average_speed_mps: float = 8.33        # ~30 km/h in the city
    speed_smoothing: float = 0.7           # weight of the previous estimate
    min_speed_interval_s: float = 0.5
    max_speed_interval_s: float = 10.0
    max_speed_kmh: float = 120.0

    # Logging
    log_dir: str = "."                     # directory for saved JSON files
    route_filename: str = "active_route.json"
    session_filename: str = "nav_session.jsonl"

    @property
    def route_filepath(self) -> str:
        return os.path.join(self.log_dir, self.route_filename)

    @property
    def session_filepath(self) -> str:
        return os.path.join(self.log_dir, self.session_filename)
