# hazard_simulator.py
# Demo hazard feed: a fixed set of Mumbai hazards plus a periodic generator
# that reports random point hazards, as a community feed would.

import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from .hazard_store import HazardStore
from .models import Coord, Hazard, HazardDraft, HazardKind

logger = logging.getLogger(__name__)

MUMBAI_CENTER = Coord(19.0760, 72.8777)


def _point(kind: str, lon: float, lat: float, severity: int, description: str) -> Dict[str, Any]:
    return {
        "type": kind,
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": {"severity": severity, "description": description},
    }


def _square(sw_lon: float, sw_lat: float, size: float, severity: int, description: str) -> Dict[str, Any]:
    ring = [
        [sw_lon, sw_lat],
        [sw_lon + size, sw_lat],
        [sw_lon + size, sw_lat + size],
        [sw_lon, sw_lat + size],
        [sw_lon, sw_lat],
    ]
    return {
        "type": "riskArea",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": {"severity": severity, "description": description},
    }


SEED_FEATURES: List[Dict[str, Any]] = [
    _point("accident", 72.8777, 19.0760, 3, "Multi-vehicle collision"),
    _point("accident", 72.8649, 19.0436, 2, "Minor fender bender"),
    _point("construction", 72.8795, 19.0656, 2, "Road widening work"),
    _point("construction", 72.8697, 19.1176, 1, "Metro construction"),
    _point("pothole", 72.8443, 19.0186, 2, "Large pothole cluster"),
    _point("pothole", 72.8670, 19.0161, 1, "Small potholes"),
    _point("portal", 72.9053, 19.1172, 1, "Toll plaza"),
    _point("portal", 72.8876, 19.1041, 1, "Police checkpoint"),
    _square(72.8600, 19.0400, 0.01, 3, "High accident zone - Sion Circle area"),
    _square(72.8750, 19.0600, 0.01, 2, "Congestion prone area - Kurla Junction"),
    _square(72.8650, 19.1100, 0.01, 2, "Construction zone - Andheri MIDC"),
]


def seed_store(store: HazardStore, features: Optional[Sequence[Dict[str, Any]]] = None) -> List[Hazard]:
    """Load feed features into the store; returns the accepted hazards."""
    if features is None:
        features = SEED_FEATURES
    added = []
    for feature in features:
        hazard = store.add_geojson(feature)
        if hazard is not None:
            added.append(hazard)
    logger.info(f"Seeded {len(added)}/{len(features)} hazards.")
    return added


class SyntheticHazardGenerator:
    """
    Reports a random point hazard near a centre on every tick.

    Reports go through HazardStore.add, so duplicates are rejected as usual.

    Args:
        store:      Target HazardStore.
        center:     Centre of the generation area.
        spread_deg: Full width of the square area, in degrees.
        rng:        Random source (seed it for reproducible runs).
    """

    KINDS = (HazardKind.ACCIDENT, HazardKind.CONSTRUCTION, HazardKind.POTHOLE)

    def __init__(
        self,
        store: HazardStore,
        center: Coord = MUMBAI_CENTER,
        spread_deg: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.center = center
        self.spread_deg = spread_deg
        self.rng = rng or random.Random()

    def generate_once(self) -> Optional[Hazard]:
        kind = self.rng.choice(self.KINDS)
        lat = self.center.lat + (self.rng.random() - 0.5) * self.spread_deg
        lon = self.center.lon + (self.rng.random() - 0.5) * self.spread_deg
        return self.store.add(HazardDraft.point(
            kind, lat, lon,
            severity=self.rng.randint(1, 3),
            description=f"Simulated {kind.value}",
        ))

    def start(self, scheduler):
        """Schedule generation every synthetic_interval_s; returns the task handle."""
        return scheduler.every(
            self.store.config.synthetic_interval_s,
            self.generate_once,
            name="synthetic-hazards",
        )
