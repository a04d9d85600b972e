from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence

from emergency_dispatch.geo import travel_time_lower_bound_min
from emergency_dispatch.models import Location, LocationKind, Route

logger = logging.getLogger(__name__)


class EmergencyNetwork:
    """
    Adjacency-list road network. Every connection is stored as two directed
    routes so congestion can differ by direction.
    """

    def __init__(self) -> None:
        self._locations: dict[str, Location] = {}
        self._adjacency: dict[Location, list[Route]] = {}

    def add_location(self, location: Location) -> None:
        if location.location_id in self._locations:
            return
        self._locations[location.location_id] = location
        self._adjacency[location] = []

    def remove_location(self, location_id: str) -> None:
        location = self._locations.pop(location_id, None)
        if location is None:
            return
        self._adjacency.pop(location, None)
        for routes in self._adjacency.values():
            routes[:] = [route for route in routes if route.destination != location]
        logger.info(f"Removed location {location_id} and its inbound routes")

    def add_connection(
        self,
        first: Location,
        second: Location,
        distance_km: float,
        travel_time_min: float,
    ) -> tuple[Route, Route]:
        self.add_location(first)
        self.add_location(second)
        # Routes must hang off the registered instances, not look-alikes.
        first = self._locations[first.location_id]
        second = self._locations[second.location_id]

        forward = Route(first, second, distance_km, travel_time_min)
        backward = Route(second, first, distance_km, travel_time_min)
        self._store(forward)
        self._store(backward)

        bound = travel_time_lower_bound_min(first, second)
        if travel_time_min < bound:
            logger.warning(
                f"Connection {first.name} <-> {second.name} ({travel_time_min:.1f} min) is faster than "
                f"the great-circle bound ({bound:.1f} min); heuristic search may be suboptimal"
            )
        return forward, backward

    def _store(self, route: Route) -> None:
        """At most one route per ordered pair; reconnecting replaces it."""
        routes = self._adjacency[route.source]
        for i, existing in enumerate(routes):
            if existing.destination == route.destination:
                routes[i] = route
                logger.info(f"Replaced route {route.source.name} -> {route.destination.name}")
                return
        routes.append(route)

    def update_congestion(self, source: Location, destination: Location, factor: float) -> None:
        route = self.get_route(source, destination)
        if route is None:
            return
        route.congestion_factor = factor
        logger.debug(f"Congestion {source.name} -> {destination.name} set to {route.congestion_factor:.2f}x")

    def get_route(self, source: Location, destination: Location) -> Optional[Route]:
        for route in self._adjacency.get(source, ()):
            if route.destination == destination:
                return route
        return None

    def get_neighbors(self, location: Location) -> Sequence[Route]:
        return tuple(self._adjacency.get(location, ()))

    def get_location(self, location_id: str) -> Optional[Location]:
        return self._locations.get(location_id)

    @property
    def locations(self) -> list[Location]:
        return list(self._locations.values())

    def routes(self) -> Iterator[Route]:
        for routes in self._adjacency.values():
            yield from routes

    def get_dispatch_centers(self) -> list[Location]:
        return [loc for loc in self._locations.values() if loc.kind is LocationKind.DISPATCH_CENTER]

    @property
    def location_count(self) -> int:
        return len(self._locations)

    @property
    def edge_count(self) -> int:
        return sum(len(routes) for routes in self._adjacency.values()) // 2

    def __contains__(self, location: object) -> bool:
        return isinstance(location, Location) and location.location_id in self._locations

    def describe(self) -> str:
        return f"Emergency network: {self.location_count} locations, {self.edge_count} connections"
