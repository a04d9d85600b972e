"""
Shortest-path engines over an EmergencyNetwork.

Both engines return a PathResult: either NoPath or Found. An unreachable
destination is a normal negative result, never an exception.
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union

from emergency_dispatch.geo import travel_time_lower_bound_min
from emergency_dispatch.models import Location
from emergency_dispatch.network import EmergencyNetwork


@dataclass(frozen=True)
class NoPath:
    source: Location
    destination: Location

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class Found:
    path: tuple[Location, ...]
    total_time: float

    @property
    def hop_count(self) -> int:
        return len(self.path) - 1

    def describe(self) -> str:
        stops = " -> ".join(loc.name for loc in self.path)
        return f"Path ({self.total_time:.2f} min): {stops}"


PathResult = Union[NoPath, Found]


class PathfindingStrategy(str, Enum):
    DIJKSTRA = "DIJKSTRA"
    ASTAR = "ASTAR"


class Pathfinder(Protocol):
    strategy: PathfindingStrategy

    def find_shortest_path(self, source: Location, destination: Location) -> PathResult:
        ...


def _reconstruct(previous: dict[Location, Location], destination: Location, total: float) -> Found:
    path = [destination]
    while path[-1] in previous:
        path.append(previous[path[-1]])
    path.reverse()
    return Found(path=tuple(path), total_time=total)


class UniformCostSearch:
    """Dijkstra's algorithm with lazy deletion of stale queue entries."""

    strategy = PathfindingStrategy.DIJKSTRA

    def __init__(self, network: EmergencyNetwork) -> None:
        self.network = network

    def find_shortest_path(self, source: Location, destination: Location) -> PathResult:
        if source not in self.network or destination not in self.network:
            return NoPath(source, destination)

        best = {source: 0.0}
        previous: dict[Location, Location] = {}
        counter = itertools.count()
        queue = [(0.0, next(counter), source)]

        while queue:
            cost, _, current = heapq.heappop(queue)
            if current == destination:
                return _reconstruct(previous, destination, cost)
            if cost > best[current]:
                continue

            for route in self.network.get_neighbors(current):
                candidate = cost + route.weight
                neighbor = route.destination
                if candidate < best.get(neighbor, float("inf")):
                    best[neighbor] = candidate
                    previous[neighbor] = current
                    heapq.heappush(queue, (candidate, next(counter), neighbor))

        return NoPath(source, destination)

    def distances_from(self, source: Location) -> dict[Location, float]:
        """Cost from source to every reachable location."""
        if source not in self.network:
            return {}

        best = {source: 0.0}
        counter = itertools.count()
        queue = [(0.0, next(counter), source)]
        while queue:
            cost, _, current = heapq.heappop(queue)
            if cost > best[current]:
                continue
            for route in self.network.get_neighbors(current):
                candidate = cost + route.weight
                if candidate < best.get(route.destination, float("inf")):
                    best[route.destination] = candidate
                    heapq.heappush(queue, (candidate, next(counter), route.destination))
        return best


class HeuristicSearch:
    """
    A* ordered by known cost plus great-circle time to the destination.

    The heuristic only stays admissible while no route is faster than the
    reference speed at congestion 1.0; EmergencyNetwork logs a warning for
    connections that break this.
    """

    strategy = PathfindingStrategy.ASTAR

    def __init__(self, network: EmergencyNetwork) -> None:
        self.network = network

    @staticmethod
    def heuristic(location: Location, destination: Location) -> float:
        return travel_time_lower_bound_min(location, destination)

    def find_shortest_path(self, source: Location, destination: Location) -> PathResult:
        if source not in self.network or destination not in self.network:
            return NoPath(source, destination)

        g_score = {source: 0.0}
        f_score = {source: self.heuristic(source, destination)}
        came_from: dict[Location, Location] = {}
        counter = itertools.count()
        open_set = [(f_score[source], next(counter), source)]

        while open_set:
            f, _, current = heapq.heappop(open_set)
            if current == destination:
                return _reconstruct(came_from, destination, g_score[destination])
            if f > f_score[current]:
                continue

            for route in self.network.get_neighbors(current):
                neighbor = route.destination
                tentative = g_score[current] + route.weight
                if tentative < g_score.get(neighbor, float("inf")):
                    came_from[neighbor] = current
                    g_score[neighbor] = tentative
                    f_score[neighbor] = tentative + self.heuristic(neighbor, destination)
                    heapq.heappush(open_set, (f_score[neighbor], next(counter), neighbor))

        return NoPath(source, destination)


def build_pathfinder(strategy: PathfindingStrategy, network: EmergencyNetwork) -> Pathfinder:
    if strategy is PathfindingStrategy.DIJKSTRA:
        return UniformCostSearch(network)
    return HeuristicSearch(network)
