from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from emergency_dispatch.config import SEVERITY_OFFSET, SEVERITY_WEIGHT
from emergency_dispatch.metrics import MetricsSink, NullMetrics
from emergency_dispatch.models import Incident, IncidentStatus, Location, ResponseUnit
from emergency_dispatch.network import EmergencyNetwork
from emergency_dispatch.prediction import HotspotScore, PredictiveAnalyzer
from emergency_dispatch.routing import Found, PathfindingStrategy, build_pathfinder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    incident: Incident
    unit: ResponseUnit
    path: Found
    response_time: float
    path_distance: float
    score: float
    algorithm: str


@dataclass(frozen=True)
class RepositionRecommendation:
    hotspot: HotspotScore
    center: Location
    travel_time: float

    def __str__(self) -> str:
        return f"{self.hotspot} -> position units at {self.center.name} ({self.travel_time:.1f} min away)"


@dataclass(frozen=True)
class StatusReport:
    active_incidents: int
    pending_incidents: int
    available_units: int
    dispatched_units: int
    network_locations: int
    algorithm: str
    success_rate: Optional[float]

    def render(self) -> str:
        lines = [
            "=== System Status ===",
            f"Active incidents:       {self.active_incidents}",
            f"Pending incidents:      {self.pending_incidents}",
            f"Available units:        {self.available_units}",
            f"Dispatched units:       {self.dispatched_units}",
            f"Network locations:      {self.network_locations}",
            f"Pathfinding algorithm:  {self.algorithm}",
        ]
        if self.success_rate is not None:
            lines.append(f"Success rate:           {self.success_rate:.2f}%")
        return "\n".join(lines)


def candidate_score(route_time: float, severity: int) -> float:
    """Lower is better; severe incidents tolerate longer routes."""
    return route_time / (severity * SEVERITY_WEIGHT + SEVERITY_OFFSET)


class DispatchScheduler:
    """
    Matches queued incidents to available, capable units by shortest-path
    response time. Every public operation takes the same lock, so a unit is
    never matched twice and reads never see a half-applied dispatch.
    """

    def __init__(
        self,
        network: EmergencyNetwork,
        analyzer: Optional[PredictiveAnalyzer] = None,
        metrics: Optional[MetricsSink] = None,
        strategy: PathfindingStrategy = PathfindingStrategy.ASTAR,
        units: Iterable[ResponseUnit] = (),
    ) -> None:
        self.network = network
        self.analyzer = analyzer or PredictiveAnalyzer()
        self.metrics = metrics if metrics is not None else NullMetrics()
        self._strategy = strategy
        self._pathfinder = build_pathfinder(strategy, network)
        self._queue: list[tuple[int, datetime, int, Incident]] = []
        self._sequence = itertools.count()
        self._units: dict[str, ResponseUnit] = {}
        self._active: dict[str, Incident] = {}
        self._lock = threading.RLock()
        for unit in units:
            self.register_unit(unit)

    @property
    def strategy(self) -> PathfindingStrategy:
        return self._strategy

    def set_strategy(self, strategy: PathfindingStrategy) -> None:
        with self._lock:
            self._strategy = strategy
            self._pathfinder = build_pathfinder(strategy, self.network)
        logger.info(f"Pathfinding algorithm set to {strategy.value}")

    def register_unit(self, unit: ResponseUnit) -> None:
        with self._lock:
            self._units[unit.unit_id] = unit

    @property
    def units(self) -> list[ResponseUnit]:
        with self._lock:
            return list(self._units.values())

    def get_unit(self, unit_id: str) -> Optional[ResponseUnit]:
        return self._units.get(unit_id)

    def available_units(self) -> list[ResponseUnit]:
        with self._lock:
            return [unit for unit in self._units.values() if unit.is_available]

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def pending_incidents(self) -> list[Incident]:
        with self._lock:
            return [entry[-1] for entry in sorted(self._queue)]

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self._active.get(incident_id)

    def report_incident(self, incident: Incident) -> Optional[DispatchResult]:
        with self._lock:
            severity_key, reported_at = incident.priority_key
            heapq.heappush(self._queue, (severity_key, reported_at, next(self._sequence), incident))
            self._active[incident.incident_id] = incident
            self.analyzer.record_incident(incident)
            logger.info(f"Incident reported: {incident}")
            return self.dispatch_next_incident()

    def dispatch_next_incident(self) -> Optional[DispatchResult]:
        with self._lock:
            if not self._queue:
                return None

            incident = self._queue[0][-1]
            result = self._find_best_dispatch(incident)
            if result is None:
                self.metrics.record_failed_dispatch(incident)
                logger.warning(f"No available unit can reach {incident.incident_id}; left queued")
                return None

            heapq.heappop(self._queue)
            self._execute(result)
            return result

    def _find_best_dispatch(self, incident: Incident) -> Optional[DispatchResult]:
        algorithm = self._strategy.value
        best: Optional[DispatchResult] = None

        for unit in self._units.values():
            if not unit.is_available or not unit.can_respond_to(incident.incident_type):
                continue

            started = time.perf_counter_ns()
            path = self._pathfinder.find_shortest_path(unit.location, incident.location)
            elapsed = time.perf_counter_ns() - started
            if not path:
                logger.debug(f"{unit.call_sign} cannot reach {incident.location.name}")
                continue

            self.metrics.record_algorithm_time(algorithm, elapsed)
            score = candidate_score(path.total_time, incident.severity)
            logger.debug(f"{unit.call_sign}: {path.total_time:.2f} min, score {score:.2f}")
            if best is None or score < best.score:
                best = DispatchResult(
                    incident=incident,
                    unit=unit,
                    path=path,
                    response_time=path.total_time,
                    path_distance=self._path_distance(path),
                    score=score,
                    algorithm=algorithm,
                )
        return best

    def _path_distance(self, path: Found) -> float:
        total = 0.0
        for source, destination in zip(path.path, path.path[1:]):
            route = self.network.get_route(source, destination)
            if route is not None:
                total += route.distance_km
        return total

    def _execute(self, result: DispatchResult) -> None:
        result.unit.assign_to(result.incident)
        result.incident.assign(result.unit)
        self.metrics.record_dispatch(
            result.incident.incident_id,
            result.incident.severity,
            result.unit.unit_id,
            result.response_time,
            result.path_distance,
            result.algorithm,
        )
        logger.info(
            f"DISPATCH: {result.unit.call_sign} -> {result.incident.incident_id} "
            f"via {result.algorithm}, ETA {result.response_time:.2f} min; {result.path.describe()}"
        )

    def resolve_incident(self, incident_id: str) -> bool:
        with self._lock:
            incident = self._active.pop(incident_id, None)
            if incident is None:
                return False

            unit = incident.assigned_unit
            if unit is not None:
                unit.complete_incident()
                logger.info(f"Incident {incident_id} resolved; {unit.call_sign} available")
            else:
                self._queue = [entry for entry in self._queue if entry[-1] is not incident]
                heapq.heapify(self._queue)
                logger.info(f"Incident {incident_id} resolved before assignment")
            incident.status = IncidentStatus.RESOLVED
            self.dispatch_next_incident()
            return True

    def find_nearest_dispatch_center(self, target: Location) -> Optional[tuple[Location, float]]:
        nearest = None
        with self._lock:
            for center in self.network.get_dispatch_centers():
                path = self._pathfinder.find_shortest_path(center, target)
                if path and (nearest is None or path.total_time < nearest[1]):
                    nearest = (center, path.total_time)
        return nearest

    def reposition_units_proactively(self, top_n: int = 3) -> list[RepositionRecommendation]:
        """Advisory only: recommends a dispatch center per hotspot, moves nothing."""
        recommendations = []
        hotspots = self.analyzer.top_hotspots(top_n)
        if not hotspots:
            logger.info("No hotspots identified yet")
            return recommendations

        for hotspot in hotspots:
            nearest = self.find_nearest_dispatch_center(hotspot.location)
            if nearest is None:
                continue
            center, travel_time = nearest
            recommendation = RepositionRecommendation(hotspot, center, travel_time)
            recommendations.append(recommendation)
            logger.info(f"Reposition: {recommendation}")
        return recommendations

    def status_report(self) -> StatusReport:
        with self._lock:
            available = len(self.available_units())
            return StatusReport(
                active_incidents=self.active_count,
                pending_incidents=self.pending_count,
                available_units=available,
                dispatched_units=len(self._units) - available,
                network_locations=self.network.location_count,
                algorithm=self._strategy.value,
                success_rate=getattr(self.metrics, "success_rate", None),
            )
