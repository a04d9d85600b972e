import threading
from datetime import datetime

import pytest

from emergency_dispatch.demo import build_scheduler
from emergency_dispatch.metrics import PerformanceMetrics
from emergency_dispatch.models import (
    Incident,
    IncidentStatus,
    IncidentType,
    Location,
    LocationKind,
    ResponseUnit,
    UnitStatus,
    UnitType,
)
from emergency_dispatch.network import EmergencyNetwork
from emergency_dispatch.prediction import PredictiveAnalyzer
from emergency_dispatch.routing import PathfindingStrategy
from emergency_dispatch.system import DispatchScheduler, candidate_score


def test_recommendation_prefers_nearby_capable_unit() -> None:
    scheduler = build_scheduler(strategy=PathfindingStrategy.ASTAR)
    leeds = scheduler.network.get_location("L4")

    result = scheduler.report_incident(Incident("INC-1", leeds, IncidentType.MEDICAL, 5))

    assert result is not None
    assert result.unit.call_sign == "MAN-A1"
    assert result.response_time == pytest.approx(50)
    assert result.path_distance == pytest.approx(64)


def test_fire_truck_never_takes_medical_incident(scheduler, london, birmingham) -> None:
    scheduler.register_unit(ResponseUnit("F1", "BIR-F1", UnitType.FIRE_TRUCK, birmingham))
    scheduler.register_unit(ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london))

    result = scheduler.report_incident(Incident("INC-1", birmingham, IncidentType.MEDICAL, 4))

    assert result.unit.unit_id == "A1"
    assert result.response_time == pytest.approx(120)
    assert scheduler.get_unit("F1").is_available


def test_dispatch_then_resolve_frees_the_unit(scheduler, metrics, london, manchester) -> None:
    ambulance = ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london)
    scheduler.register_unit(ambulance)
    incident = Incident("INC-1", manchester, IncidentType.MEDICAL, 5)

    result = scheduler.report_incident(incident)

    assert result.path_distance == pytest.approx(298)
    assert incident.status is IncidentStatus.ASSIGNED
    assert incident.assigned_unit is ambulance
    assert ambulance.status is UnitStatus.DISPATCHED
    assert ambulance.current_incident is incident
    assert metrics.records[0].unit_id == "A1"

    assert scheduler.resolve_incident("INC-1")

    assert ambulance.status is UnitStatus.AVAILABLE
    assert ambulance.current_incident is None
    assert incident.status is IncidentStatus.RESOLVED
    assert scheduler.active_count == 0


def test_rescue_incident_waits_for_a_helicopter(scheduler, metrics, london, manchester) -> None:
    scheduler.register_unit(ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london))
    incident = Incident("INC-R", manchester, IncidentType.RESCUE, 3)

    assert scheduler.report_incident(incident) is None
    assert scheduler.pending_count == 1
    assert metrics.failed_dispatches == 1

    helicopter = ResponseUnit("H1", "LON-H1", UnitType.RESCUE_HELICOPTER, london)
    scheduler.register_unit(helicopter)
    result = scheduler.dispatch_next_incident()

    assert result.unit is helicopter
    assert scheduler.pending_count == 0
    assert incident.status is IncidentStatus.ASSIGNED


def test_queue_orders_by_severity_then_report_time(scheduler, london, manchester) -> None:
    routine = Incident("A", manchester, IncidentType.MEDICAL, 2, reported_at=datetime(2024, 1, 8, 10, 0))
    late = Incident("B", manchester, IncidentType.MEDICAL, 5, reported_at=datetime(2024, 1, 8, 10, 5))
    early = Incident("C", manchester, IncidentType.MEDICAL, 5, reported_at=datetime(2024, 1, 8, 10, 1))
    for incident in (routine, late, early):
        scheduler.report_incident(incident)

    assert [i.incident_id for i in scheduler.pending_incidents()] == ["C", "B", "A"]

    scheduler.register_unit(ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london))
    result = scheduler.dispatch_next_incident()

    assert result.incident is early
    assert [i.incident_id for i in scheduler.pending_incidents()] == ["B", "A"]


def test_resolution_redispatches_waiting_incident(scheduler, london, manchester) -> None:
    ambulance = ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london)
    scheduler.register_unit(ambulance)
    first = Incident("INC-1", manchester, IncidentType.MEDICAL, 5)
    second = Incident("INC-2", manchester, IncidentType.MEDICAL, 3)

    scheduler.report_incident(first)
    assert scheduler.report_incident(second) is None

    scheduler.resolve_incident("INC-1")

    assert second.assigned_unit is ambulance
    assert ambulance.current_incident is second
    assert scheduler.pending_count == 0


def test_resolving_unassigned_incident_drops_it_from_queue(scheduler, manchester) -> None:
    incident = Incident("INC-1", manchester, IncidentType.HAZMAT, 4)
    scheduler.report_incident(incident)

    assert scheduler.resolve_incident("INC-1")
    assert scheduler.pending_count == 0
    assert incident.status is IncidentStatus.RESOLVED


def test_resolve_unknown_incident_is_noop(scheduler) -> None:
    assert scheduler.resolve_incident("missing") is False


def test_dispatch_is_deterministic() -> None:
    outcomes = []
    for _ in range(3):
        scheduler = build_scheduler(strategy=PathfindingStrategy.DIJKSTRA)
        nottingham = scheduler.network.get_location("L8")
        result = scheduler.report_incident(Incident("INC-9", nottingham, IncidentType.POLICE, 3))
        outcomes.append((result.unit.unit_id, result.score))

    assert len(set(outcomes)) == 1
    assert outcomes[0][0] == "U7"


def test_strategy_switch_applies_to_next_dispatch(scheduler, london, manchester) -> None:
    scheduler.register_unit(ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london))
    scheduler.register_unit(ResponseUnit("A2", "LON-A2", UnitType.AMBULANCE, london))

    first = scheduler.report_incident(Incident("INC-1", manchester, IncidentType.MEDICAL, 3))
    scheduler.set_strategy(PathfindingStrategy.DIJKSTRA)
    second = scheduler.report_incident(Incident("INC-2", manchester, IncidentType.MEDICAL, 3))

    assert first.algorithm == "ASTAR"
    assert second.algorithm == "DIJKSTRA"
    assert second.response_time == pytest.approx(first.response_time)


def test_candidate_score_favours_severe_incidents() -> None:
    assert candidate_score(90, 1) == pytest.approx(90)
    assert candidate_score(90, 5) == pytest.approx(50)


def test_reposition_recommends_nearest_center() -> None:
    scheduler = build_scheduler()
    leeds = scheduler.network.get_location("L4")
    scheduler.report_incident(Incident("INC-1", leeds, IncidentType.MEDICAL, 4))

    recommendations = scheduler.reposition_units_proactively(3)

    assert len(recommendations) == 1
    assert recommendations[0].hotspot.location == leeds
    assert recommendations[0].center.name == "Manchester"
    assert recommendations[0].travel_time == pytest.approx(50)


def test_reposition_without_history_is_empty(scheduler) -> None:
    assert scheduler.reposition_units_proactively() == []


def test_status_report_counts(scheduler, london, manchester) -> None:
    scheduler.register_unit(ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london))
    scheduler.register_unit(ResponseUnit("P1", "LON-P1", UnitType.POLICE_CAR, london))
    scheduler.report_incident(Incident("INC-1", manchester, IncidentType.MEDICAL, 3))
    scheduler.report_incident(Incident("INC-2", manchester, IncidentType.FIRE, 3))

    report = scheduler.status_report()

    assert report.active_incidents == 2
    assert report.pending_incidents == 1
    assert report.available_units == 1
    assert report.dispatched_units == 1
    assert report.success_rate == pytest.approx(50)
    assert "Pathfinding algorithm:  ASTAR" in report.render()


def test_scheduler_without_metrics_sink(triangle, london, manchester) -> None:
    scheduler = DispatchScheduler(triangle, units=[ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london)])

    result = scheduler.report_incident(Incident("INC-1", manchester, IncidentType.MEDICAL, 2))

    assert result is not None
    assert scheduler.status_report().success_rate is None


def test_path_distance_follows_the_route_actually_stored(london, birmingham) -> None:
    network = EmergencyNetwork()
    network.add_connection(london, birmingham, 100, 60)
    network.add_connection(london, birmingham, 10, 5)
    scheduler = DispatchScheduler(network, units=[ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london)])

    result = scheduler.report_incident(Incident("INC-1", birmingham, IncidentType.MEDICAL, 3))

    assert result.response_time == pytest.approx(5)
    assert result.path_distance == pytest.approx(10)


def test_search_time_is_recorded_only_for_reachable_candidates(scheduler, metrics, london, manchester) -> None:
    island = Location("Z9", "Island", LocationKind.INCIDENT_SITE, 50.0, -5.0)
    scheduler.network.add_location(island)
    scheduler.register_unit(ResponseUnit("A1", "LON-A1", UnitType.AMBULANCE, london))
    scheduler.register_unit(ResponseUnit("A2", "ISL-A1", UnitType.AMBULANCE, island))

    scheduler.report_incident(Incident("INC-1", manchester, IncidentType.MEDICAL, 3))

    assert list(metrics.execution_ns) == ["ASTAR"]
    assert metrics.execution_ns["ASTAR"] >= 0
    assert metrics.algorithm_comparison()["ASTAR"].dispatch_count == 1


def test_concurrent_reports_and_reads_never_double_assign(triangle, london, birmingham, manchester) -> None:
    metrics = PerformanceMetrics()
    scheduler = DispatchScheduler(triangle, PredictiveAnalyzer(clock=lambda: datetime(2024, 1, 8, 12, 0)), metrics)
    for i in range(5):
        scheduler.register_unit(ResponseUnit(f"S{i}", f"LON-S{i}", UnitType.AMBULANCE, london))
    errors = []
    stop = threading.Event()

    def read() -> None:
        while not stop.is_set():
            try:
                scheduler.status_report()
                scheduler.available_units()
                scheduler.pending_incidents()
                scheduler.units
            except RuntimeError as exc:
                errors.append(exc)

    def report(worker: int) -> None:
        for i in range(40):
            scheduler.report_incident(Incident(f"INC-{worker}-{i}", manchester, IncidentType.MEDICAL, i % 5 + 1))

    reader = threading.Thread(target=read)
    reporters = [threading.Thread(target=report, args=(worker,)) for worker in range(4)]
    reader.start()
    for thread in reporters:
        thread.start()
    for i in range(200):
        home = london if i % 2 else birmingham
        scheduler.register_unit(ResponseUnit(f"A{i}", f"AMB-{i}", UnitType.AMBULANCE, home))
    for thread in reporters:
        thread.join()
    stop.set()
    reader.join()

    assert errors == []
    dispatched = [record.unit_id for record in metrics.records]
    assert len(dispatched) == len(set(dispatched))
    for unit in scheduler.units:
        if unit.current_incident is not None:
            assert unit.current_incident.assigned_unit is unit
    report = scheduler.status_report()
    assert report.dispatched_units == len(dispatched)
    assert report.pending_incidents + len(dispatched) == 160
