# graph_router.py
# A* pathfinding on a RoadGraph; an offline routing provider.
# Returns Route objects like any other provider.

import heapq
from typing import List, Optional, Tuple

from .geo_utils import calculate_bearing, get_turn_instruction, haversine_distance
from .models import Coord, Instruction, Route
from .osm_graph import Edge, Node, RoadGraph
from .routing_engine import RoutingProviderError


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _reconstruct_path(came_from, start: Node, end: Node) -> List[Tuple[Node, Edge]]:
    path = []
    curr = end
    visited: set = set()
    while curr != start:
        if curr in visited:
            raise RoutingProviderError("Cycle detected while rebuilding the path.")
        visited.add(curr)
        parent, edge = came_from[curr]
        path.append((parent, edge))
        curr = parent
    path.reverse()
    return path


def _maneuver(turn_text: str) -> str:
    """'Turn sharp right' → 'sharp_right', 'Go straight' → 'straight'."""
    text = turn_text.lower()
    if "straight" in text:
        return "straight"
    side = "right" if "right" in text else "left"
    return f"sharp_{side}" if "sharp" in text else side


def _build_instructions(path) -> List[Instruction]:
    """Emit one instruction per road change, carrying the distance driven since the last one."""
    first_edge = path[0][1]
    instructions = [Instruction(
        text=f"Start on {first_edge.name}",
        distance_m=0.0,
        maneuver_type="depart",
    )]

    curr_name = first_edge.name
    dist_accum = 0.0
    time_accum = 0.0

    for i, (node, edge) in enumerate(path):
        dist_accum += edge.distance
        time_accum += edge.time
        next_edge = path[i + 1][1] if i + 1 < len(path) else None

        if next_edge and next_edge.name == curr_name and next_edge.road_type == edge.road_type:
            continue

        if next_edge:
            b1 = calculate_bearing(node.lat, node.lon, edge.target.lat, edge.target.lon)
            b2 = calculate_bearing(
                edge.target.lat, edge.target.lon,
                next_edge.target.lat, next_edge.target.lon,
            )
            turn_text = get_turn_instruction(b2 - b1)
            text = f"After {int(dist_accum)} m, {turn_text.lower()} onto {next_edge.name}"
            maneuver = _maneuver(turn_text)
            curr_name = next_edge.name
        else:
            text = f"After {int(dist_accum)} m, you have reached your destination"
            maneuver = "arrive"

        instructions.append(Instruction(
            text=text,
            distance_m=dist_accum,
            maneuver_type=maneuver,
            duration_s=time_accum,
        ))
        dist_accum = 0.0
        time_accum = 0.0

    return instructions


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class GraphRouter:
    """
    Fastest driving route on a local RoadGraph using A*.

    Args:
        graph: Populated RoadGraph from osm_graph.load_road_graph().
    """

    def __init__(self, graph: RoadGraph) -> None:
        self.graph = graph

    def _search(self, start_node: Node, end_node: Node) -> Optional[dict]:
        counter = 0
        open_set: list = []
        heapq.heappush(open_set, (0.0, counter, start_node))
        came_from: dict = {start_node: (None, None)}
        cost_so_far: dict = {start_node: 0.0}
        visited: set = set()
        # Fastest speed in the graph keeps the estimate optimistic
        max_speed_ms = self.graph.max_speed_kmh / 3.6

        while open_set:
            _, _, current = heapq.heappop(open_set)
            if current in visited:
                continue
            visited.add(current)
            if current == end_node:
                return came_from
            for edge in current.edges:
                new_cost = cost_so_far[current] + edge.time
                neighbor = edge.target
                if neighbor not in cost_so_far or new_cost < cost_so_far[neighbor]:
                    cost_so_far[neighbor] = new_cost
                    heuristic = haversine_distance(
                        neighbor.lat, neighbor.lon, end_node.lat, end_node.lon
                    ) / max_speed_ms
                    counter += 1
                    heapq.heappush(open_set, (new_cost + heuristic, counter, neighbor))
                    came_from[neighbor] = (current, edge)
        return None

    def fetch_routes(self, origin: Coord, destination: Coord, alternatives: int = 1) -> List[Route]:
        """
        Run A* between the graph nodes nearest to origin and destination.

        Only one route is produced; alternatives is accepted for interface
        compatibility.

        Raises:
            RoutingProviderError: If the graph has no route between the points.
        """
        start_node, _ = self.graph.nearest_node(origin)
        end_node, _ = self.graph.nearest_node(destination)

        if not start_node or not end_node:
            raise RoutingProviderError("Road graph is empty.")
        if start_node == end_node:
            raise RoutingProviderError("Origin and destination map to the same node.")

        came_from = self._search(start_node, end_node)
        if came_from is None:
            raise RoutingProviderError("No drivable route found between these points.")

        path = _reconstruct_path(came_from, start_node, end_node)
        coords = [start_node.coord] + [edge.target.coord for _, edge in path]
        return [Route(
            id="graph-route-0",
            coordinates=tuple(coords),
            distance_m=sum(edge.distance for _, edge in path),
            duration_s=sum(edge.time for _, edge in path),
            instructions=tuple(_build_instructions(path)),
        )]
