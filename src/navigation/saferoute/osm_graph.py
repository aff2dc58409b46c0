# osm_graph.py
# Turns an .osm extract into a directed road graph for driving.
# Depends only on: geo_utils, nav_config, models.

import logging
import re
import xml.sax as sax
from typing import Dict, List, Optional, Tuple

import numpy as np

from .geo_utils import haversine_distance, haversine_to_many
from .models import Coord
from .nav_config import DEFAULT_SPEEDS_KMH, DRIVABLE_TYPES, FALLBACK_ROAD_SPEED_KMH

logger = logging.getLogger(__name__)

ONEWAY_VALUES = {"yes", "1", "true", "-1"}


# ---------------------------------------------------------------------------
# Graph primitives
# ---------------------------------------------------------------------------

class Edge:
    """One-way road segment; `time` is seconds at the segment's speed."""

    __slots__ = ["target", "distance", "time", "name", "road_type"]

    def __init__(self, target: "Node", length_m: float, road_type: str, name: str, speed_kmh: float) -> None:
        self.target = target
        self.distance = length_m
        self.time = length_m / (speed_kmh / 3.6)
        self.road_type = road_type
        self.name = name


class Node:
    """Junction or shape point of a drivable way."""

    __slots__ = ["id", "lat", "lon", "edges"]

    def __init__(self, osm_id: str, lat: float, lon: float) -> None:
        self.id = osm_id
        self.lat = float(lat)
        self.lon = float(lon)
        self.edges: List[Edge] = []

    @property
    def coord(self) -> Coord:
        return Coord(self.lat, self.lon)


# ---------------------------------------------------------------------------
# Road graph
# ---------------------------------------------------------------------------

class RoadGraph:
    """
    Drivable nodes keyed by OSM id, with outgoing edges on each node.

    max_speed_kmh is the fastest edge seen, used to bound A* estimates.
    """

    def __init__(self) -> None:
        self.nodes: Dict[str, Node] = {}
        self.max_speed_kmh = max(DEFAULT_SPEEDS_KMH.values())
        self._index: Optional[Tuple[List[Node], np.ndarray, np.ndarray]] = None

    def add_node(self, node: Node) -> None:
        self.nodes[node.id] = node
        self._index = None

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        road_type: str,
        name: str,
        speed_kmh: float,
        oneway: bool = False,
    ) -> None:
        """Connect two known nodes; silently skipped if either is missing."""
        a = self.nodes.get(from_id)
        b = self.nodes.get(to_id)
        if a is None or b is None:
            return
        length = haversine_distance(a.lat, a.lon, b.lat, b.lon)
        a.edges.append(Edge(b, length, road_type, name, speed_kmh))
        if not oneway:
            b.edges.append(Edge(a, length, road_type, name, speed_kmh))
        self.max_speed_kmh = max(self.max_speed_kmh, speed_kmh)

    def prune(self) -> None:
        """Keep only nodes touched by at least one edge."""
        targets = {e.target.id for n in self.nodes.values() for e in n.edges}
        self.nodes = {nid: n for nid, n in self.nodes.items() if n.edges or nid in targets}
        self._index = None

    def nearest_node(self, coord: Coord) -> Tuple[Optional[Node], float]:
        """Closest node to coord and its distance in metres; (None, inf) when empty."""
        if not self.nodes:
            return None, float("inf")
        if self._index is None:
            nodes = list(self.nodes.values())
            self._index = (
                nodes,
                np.array([n.lat for n in nodes]),
                np.array([n.lon for n in nodes]),
            )
        nodes, lats, lons = self._index
        dists = haversine_to_many(coord.lat, coord.lon, lats, lons)
        i = int(np.argmin(dists))
        return nodes[i], float(dists[i])


# ---------------------------------------------------------------------------
# Tag helpers
# ---------------------------------------------------------------------------

_MAXSPEED_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(mph)?\s*$")


def parse_maxspeed(value: Optional[str]) -> Optional[float]:
    """'50' → 50.0, '30 mph' → 48.3; anything else → None."""
    if not value:
        return None
    match = _MAXSPEED_RE.match(value)
    if not match:
        return None
    speed = float(match.group(1))
    return speed * 1.609344 if match.group(2) else speed


def way_speed_kmh(tags: Dict[str, str]) -> float:
    highway = tags.get("highway", "")
    return parse_maxspeed(tags.get("maxspeed")) or DEFAULT_SPEEDS_KMH.get(highway, FALLBACK_ROAD_SPEED_KMH)


def is_drivable(tags: Dict[str, str]) -> bool:
    highway = tags.get("highway")
    return bool(highway) and highway in DRIVABLE_TYPES


# ---------------------------------------------------------------------------
# SAX content handler
# ---------------------------------------------------------------------------

class RoadGraphHandler(sax.ContentHandler):
    """Streams nodes into the graph and turns each drivable way into edges."""

    def __init__(self, graph: RoadGraph) -> None:
        super().__init__()
        self.graph = graph
        self._way_refs: Optional[List[str]] = None
        self._way_tags: Dict[str, str] = {}
        self.ways_used = 0

    def startElement(self, name: str, attrs) -> None:  # type: ignore[override]
        if name == "node":
            self.graph.add_node(Node(attrs["id"], attrs["lat"], attrs["lon"]))
        elif name == "way":
            self._way_refs = []
            self._way_tags = {}
        elif self._way_refs is None:
            return
        elif name == "nd":
            self._way_refs.append(attrs["ref"])
        elif name == "tag":
            self._way_tags[attrs["k"]] = attrs["v"]

    def endElement(self, name: str) -> None:  # type: ignore[override]
        if name != "way" or self._way_refs is None:
            return
        refs, tags = self._way_refs, self._way_tags
        self._way_refs = None
        if is_drivable(tags) and len(refs) >= 2:
            self._add_way(refs, tags)

    def _add_way(self, refs: List[str], tags: Dict[str, str]) -> None:
        oneway = tags.get("oneway", "no")
        if oneway == "-1":
            refs = refs[::-1]
        speed = way_speed_kmh(tags)
        road_name = tags.get("name", "Unnamed road")
        for u, v in zip(refs, refs[1:]):
            self.graph.add_edge(u, v, tags["highway"], road_name, speed, oneway=oneway in ONEWAY_VALUES)
        self.ways_used += 1


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def load_road_graph(osm_file: str) -> RoadGraph:
    """
    Parse an OSM XML extract into a RoadGraph.

    Args:
        osm_file: Path to the .osm file.

    Returns:
        RoadGraph with only routable nodes left.

    Raises:
        FileNotFoundError: If osm_file does not exist.
        xml.sax.SAXParseException: If the file is not valid XML.
    """
    logger.info(f"Loading road graph: {osm_file}")
    graph = RoadGraph()
    handler = RoadGraphHandler(graph)
    parser = sax.make_parser()
    parser.setContentHandler(handler)
    with open(osm_file, "rb") as f:
        parser.parse(f)
    graph.prune()
    logger.info(f"Road graph ready: {handler.ways_used} ways, {len(graph.nodes)} routable nodes.")
    return graph
