# ors_client.py
# OpenRouteService adapter: talks HTTP, returns normalised Route objects.
# Knows nothing about hazards or scoring.

import logging
import os
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

from .models import Coord, Instruction, Route
from .routing_engine import RoutingProviderError

logger = logging.getLogger(__name__)

# Read ORS settings from environment / .env
# ORS_API_KEY=...
# ORS_BASE_URL=https://api.openrouteservice.org
load_dotenv()

DEFAULT_BASE_URL = "https://api.openrouteservice.org"

# ORS instruction type codes → maneuver names
MANEUVER_TYPES: Dict[int, str] = {
    0: "left",
    1: "right",
    2: "sharp_left",
    3: "sharp_right",
    4: "slight_left",
    5: "slight_right",
    6: "straight",
    7: "enter_roundabout",
    8: "exit_roundabout",
    9: "u_turn",
    10: "arrive",
    11: "depart",
    12: "keep_left",
    13: "keep_right",
}


class ORSClient:
    """
    OpenRouteService directions client.

    Args:
        api_key:  ORS key; defaults to $ORS_API_KEY.
        base_url: API root; defaults to $ORS_BASE_URL or the public endpoint.
        profile:  ORS profile (driving-car, driving-hgv, ...).
        timeout:  Seconds to wait for a response.

    Raises:
        ValueError: If no API key is configured.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        profile: str = "driving-car",
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key or os.getenv("ORS_API_KEY")
        self.base_url = (base_url or os.getenv("ORS_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.profile = profile
        self.timeout = timeout

        if not self.api_key:
            raise ValueError("ORS API key not set. Please set ORS_API_KEY in the .env file.")

    @property
    def url(self) -> str:
        return f"{self.base_url}/v2/directions/{self.profile}/geojson"

    def build_request(self, origin: Coord, destination: Coord, alternatives: int) -> Dict[str, Any]:
        """ORS wants [lon, lat] pairs."""
        body: Dict[str, Any] = {
            "coordinates": [[origin.lon, origin.lat], [destination.lon, destination.lat]],
            "instructions": True,
            "geometry_simplify": False,
        }
        if alternatives > 1:
            body["alternative_routes"] = {
                "target_count": alternatives,
                "weight_factor": 1.4,
                "share_factor": 0.6,
            }
        return body

    def fetch_routes(self, origin: Coord, destination: Coord, alternatives: int = 3) -> List[Route]:
        """
        Request driving routes with alternatives.

        Returns:
            Parsed routes, possibly empty.

        Raises:
            RoutingProviderError: On transport, HTTP or payload errors.
        """
        try:
            response = requests.post(
                self.url,
                json=self.build_request(origin, destination, alternatives),
                headers={"Authorization": self.api_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise RoutingProviderError(f"ORS request failed: {e}") from e
        except ValueError as e:
            raise RoutingProviderError(f"ORS returned invalid JSON: {e}") from e

        try:
            routes = parse_geojson_routes(data)
        except (KeyError, TypeError, IndexError, ValueError) as e:
            raise RoutingProviderError(f"Unexpected ORS payload: {e}") from e

        logger.info(f"ORS returned {len(routes)} route(s).")
        return routes


def parse_geojson_routes(data: Dict[str, Any]) -> List[Route]:
    """Turn an ORS GeoJSON FeatureCollection into Route objects."""
    features = (data or {}).get("features") or []
    routes: List[Route] = []

    for index, feature in enumerate(features):
        coords = tuple(Coord(lat=lat, lon=lon) for lon, lat, *_ in feature["geometry"]["coordinates"])
        props = feature.get("properties") or {}
        segments = props.get("segments") or []
        summary = props.get("summary") or (segments[0] if segments else {})

        instructions = []
        for segment in segments:
            for step in segment.get("steps", []):
                instructions.append(Instruction(
                    text=step.get("instruction") or "Continue straight",
                    distance_m=float(step.get("distance", 0.0)),
                    maneuver_type=MANEUVER_TYPES.get(step.get("type"), "straight"),
                    duration_s=float(step.get("duration", 0.0)),
                ))

        routes.append(Route(
            id=f"route-{index}",
            coordinates=coords,
            distance_m=float(summary.get("distance", 0.0)),
            duration_s=float(summary.get("duration", 0.0)),
            instructions=tuple(instructions),
        ))
    return routes
