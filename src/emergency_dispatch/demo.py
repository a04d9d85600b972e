from __future__ import annotations

import logging
import random
import time
from datetime import datetime
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from emergency_dispatch import config
from emergency_dispatch.geo import haversine_km
from emergency_dispatch.learning import AdaptiveWeightLearner
from emergency_dispatch.metrics import PerformanceMetrics
from emergency_dispatch.models import (
    Incident,
    IncidentType,
    Location,
    LocationKind,
    ResponseUnit,
    UnitType,
)
from emergency_dispatch.network import EmergencyNetwork
from emergency_dispatch.prediction import PredictiveAnalyzer
from emergency_dispatch.routing import PathfindingStrategy, UniformCostSearch
from emergency_dispatch.system import DispatchScheduler

UK_LOCATIONS = [
    ("L1", "London", LocationKind.DISPATCH_CENTER, 51.5074, -0.1278),
    ("L2", "Manchester", LocationKind.DISPATCH_CENTER, 53.4808, -2.2426),
    ("L3", "Birmingham", LocationKind.DISPATCH_CENTER, 52.4862, -1.8904),
    ("L4", "Leeds", LocationKind.CITY, 53.8008, -1.5491),
    ("L5", "Liverpool", LocationKind.CITY, 53.4084, -2.9916),
    ("L6", "Bristol", LocationKind.DISPATCH_CENTER, 51.4545, -2.5879),
    ("L7", "Sheffield", LocationKind.CITY, 53.3811, -1.4701),
    ("L8", "Nottingham", LocationKind.CITY, 52.9548, -1.1581),
]

# (first, second, distance km, travel time min)
UK_CONNECTIONS = [
    ("L1", "L3", 163, 120),
    ("L1", "L6", 172, 130),
    ("L3", "L2", 135, 90),
    ("L3", "L8", 75, 55),
    ("L3", "L6", 145, 100),
    ("L2", "L4", 64, 50),
    ("L2", "L5", 56, 45),
    ("L2", "L7", 61, 48),
    ("L4", "L5", 116, 80),
    ("L4", "L7", 52, 42),
    ("L7", "L8", 56, 45),
]

DEFAULT_UNITS = [
    ("U1", "LON-A1", UnitType.AMBULANCE, "L1"),
    ("U2", "LON-F1", UnitType.FIRE_TRUCK, "L1"),
    ("U3", "LON-P1", UnitType.POLICE_CAR, "L1"),
    ("U4", "MAN-A1", UnitType.AMBULANCE, "L2"),
    ("U5", "MAN-F1", UnitType.FIRE_TRUCK, "L2"),
    ("U6", "BIR-A1", UnitType.AMBULANCE, "L3"),
    ("U7", "BIR-P1", UnitType.POLICE_CAR, "L3"),
    ("U8", "BIR-H1", UnitType.HAZMAT_TEAM, "L3"),
    ("U9", "BRI-F1", UnitType.FIRE_TRUCK, "L6"),
    ("U10", "BRI-A1", UnitType.AMBULANCE, "L6"),
]


def build_uk_network() -> EmergencyNetwork:
    network = EmergencyNetwork()
    for location_id, name, kind, lat, lon in UK_LOCATIONS:
        network.add_location(Location(location_id, name, kind, lat, lon))
    for first, second, distance, minutes in UK_CONNECTIONS:
        network.add_connection(network.get_location(first), network.get_location(second), distance, minutes)
    return network


def register_default_units(scheduler: DispatchScheduler) -> None:
    for unit_id, call_sign, unit_type, location_id in DEFAULT_UNITS:
        location = scheduler.network.get_location(location_id)
        scheduler.register_unit(ResponseUnit(unit_id, call_sign, unit_type, location))


def build_scheduler(
    network: Optional[EmergencyNetwork] = None,
    strategy: Optional[PathfindingStrategy] = None,
) -> DispatchScheduler:
    network = network or build_uk_network()
    scheduler = DispatchScheduler(
        network=network,
        analyzer=PredictiveAnalyzer(),
        metrics=PerformanceMetrics(),
        strategy=strategy or PathfindingStrategy.ASTAR,
    )
    register_default_units(scheduler)
    return scheduler


def build_mesh_network(size: int, seed: int = 42, speed_kmh: float = 60.0) -> EmergencyNetwork:
    """
    Random mesh for load tests. Route distance is the great-circle distance
    and speed stays under the reference speed, so A* remains optimal.
    """
    rng = random.Random(seed)
    network = EmergencyNetwork()
    locations = []
    for i in range(size):
        kind = LocationKind.DISPATCH_CENTER if i < size // 4 else LocationKind.CITY
        location = Location(f"L{i}", f"Location{i}", kind, 50 + rng.random() * 5, -3 + rng.random() * 5)
        locations.append(location)
        network.add_location(location)

    for location in locations:
        for _ in range(3 + rng.randrange(3)):
            target = locations[rng.randrange(size)]
            if target == location:
                continue
            distance = haversine_km(location, target)
            network.add_connection(location, target, distance, distance / speed_kmh * 60.0)
    return network


def _register_mesh_units(scheduler: DispatchScheduler, count: int) -> None:
    network = scheduler.network
    centers = network.get_dispatch_centers() or network.locations
    unit_types = list(UnitType)
    for i in range(max(1, count)):
        center = centers[i % len(centers)]
        scheduler.register_unit(ResponseUnit(f"U{i}", f"UNIT-{i}", unit_types[i % len(unit_types)], center))


def run_load_test(size: int = 200, incidents: int = 100, seed: int = 7) -> PerformanceMetrics:
    network = build_mesh_network(size, seed=seed)
    metrics = PerformanceMetrics()
    scheduler = DispatchScheduler(network, PredictiveAnalyzer(), metrics)
    rng = random.Random(seed)
    locations = network.locations
    _register_mesh_units(scheduler, size // 10)

    started = time.perf_counter()
    for i in range(incidents):
        incident = Incident(
            f"LOAD-{i:04d}",
            rng.choice(locations),
            rng.choice(list(IncidentType)),
            rng.randint(1, 5),
        )
        result = scheduler.report_incident(incident)
        if result is not None:
            scheduler.resolve_incident(incident.incident_id)
    elapsed = time.perf_counter() - started
    print(f"Load test: {incidents} incidents over {size} locations in {elapsed * 1000:.1f} ms")
    print(f"Success rate: {metrics.success_rate:.2f}%")
    return metrics


def _network_size_table(sizes: Sequence[int], repeats: int) -> pd.DataFrame:
    rows = []
    for size in sizes:
        started = time.perf_counter_ns()
        network = build_mesh_network(size)
        setup_ns = time.perf_counter_ns() - started

        engine = UniformCostSearch(network)
        locations = network.locations
        source, destination = locations[0], locations[-1]
        samples = []
        for _ in range(repeats):
            started = time.perf_counter_ns()
            result = engine.find_shortest_path(source, destination)
            samples.append(time.perf_counter_ns() - started)
        rows.append(
            {
                "size": size,
                "edges": network.edge_count,
                "setup_ms": setup_ns / 1e6,
                "path_ms": float(np.median(samples)) / 1e6,
                "hops": result.hop_count if result else 0,
            }
        )
    return pd.DataFrame(rows)


def _complexity_exponent(table: pd.DataFrame) -> float:
    """Slope of log(path time) against log(size)."""
    if len(table) < 2:
        return 0.0
    times = np.maximum(table["path_ms"].to_numpy(dtype=float), 1e-6)
    return float(np.polyfit(np.log(table["size"].to_numpy(dtype=float)), np.log(times), 1)[0])


def _incident_load_table(loads: Sequence[int], size: int) -> pd.DataFrame:
    network = build_mesh_network(size)
    locations = network.locations
    incident_types = list(IncidentType)
    rows = []
    for load in loads:
        metrics = PerformanceMetrics()
        scheduler = DispatchScheduler(network, PredictiveAnalyzer(), metrics)
        _register_mesh_units(scheduler, min(load // 2, 50))

        started = time.perf_counter()
        for i in range(load):
            incident = Incident(
                f"INC{i}",
                locations[i % len(locations)],
                incident_types[i % len(incident_types)],
                i % 5 + 1,
            )
            scheduler.report_incident(incident)
        elapsed_ms = (time.perf_counter() - started) * 1000
        rows.append(
            {
                "incidents": load,
                "total_ms": elapsed_ms,
                "per_incident_ms": elapsed_ms / load,
                "success_rate": metrics.success_rate,
            }
        )
    return pd.DataFrame(rows)


def _algorithm_table(sizes: Sequence[int], incidents: int) -> pd.DataFrame:
    rows = []
    for size in sizes:
        network = build_mesh_network(size)
        locations = network.locations
        metrics = PerformanceMetrics()
        for strategy in PathfindingStrategy:
            scheduler = DispatchScheduler(network, PredictiveAnalyzer(), metrics, strategy=strategy)
            _register_mesh_units(scheduler, len(UnitType) * 2)
            for i in range(incidents):
                incident = Incident(f"{strategy.value}-{i}", locations[-1 - i % len(locations)], IncidentType.FIRE, 3)
                if scheduler.report_incident(incident) is not None:
                    scheduler.resolve_incident(incident.incident_id)

        stats = metrics.algorithm_comparison()
        dijkstra = stats.get(PathfindingStrategy.DIJKSTRA.value)
        astar = stats.get(PathfindingStrategy.ASTAR.value)
        dijkstra_ms = dijkstra.avg_execution_ns / 1e6 if dijkstra else 0.0
        astar_ms = astar.avg_execution_ns / 1e6 if astar else 0.0
        rows.append(
            {
                "size": size,
                "dijkstra_ms": dijkstra_ms,
                "astar_ms": astar_ms,
                "speedup": dijkstra_ms / astar_ms if astar_ms > 0 else float("nan"),
            }
        )
    return pd.DataFrame(rows)


def _mixed_operations(operations: int, size: int) -> dict[str, float]:
    network = build_mesh_network(size)
    locations = network.locations
    incident_types = list(IncidentType)
    metrics = PerformanceMetrics()
    scheduler = DispatchScheduler(network, PredictiveAnalyzer(), metrics)
    _register_mesh_units(scheduler, 50)

    started = time.perf_counter()
    for i in range(operations):
        incident = Incident(f"INC{i}", locations[i % len(locations)], incident_types[i % len(incident_types)], i % 5 + 1)
        scheduler.report_incident(incident)
        if i and i % 10 == 0:
            scheduler.resolve_incident(f"INC{i - 5}")
    elapsed = time.perf_counter() - started
    return {
        "operations": operations,
        "total_ms": elapsed * 1000,
        "ops_per_second": operations / elapsed if elapsed > 0 else float("inf"),
        "success_rate": metrics.success_rate,
    }


def run_scalability_suite(
    sizes: Sequence[int] = (10, 25, 50, 100, 200),
    loads: Sequence[int] = (10, 25, 50, 100, 200),
    algorithm_sizes: Sequence[int] = (20, 50, 100, 150),
    operations: int = 1000,
    repeats: int = 5,
) -> dict[str, object]:
    """
    Network-size, incident-load, algorithm and mixed report/resolve runs on
    seeded meshes. Prints each table and returns them keyed by run.
    """
    with pd.option_context("display.float_format", "{:.3f}".format):
        print("=== Network size ===")
        size_table = _network_size_table(sizes, repeats)
        print(size_table.to_string(index=False))
        exponent = _complexity_exponent(size_table)
        print(f"Empirical complexity: O(n^{exponent:.2f})")

        print("\n=== Incident load ===")
        load_table = _incident_load_table(loads, size=50)
        print(load_table.to_string(index=False))
        peak = load_table.iloc[-1]
        if peak["total_ms"] > 0:
            print(f"Peak throughput: {peak['incidents'] / (peak['total_ms'] / 1000):.1f} incidents/second")

        print("\n=== Algorithm comparison ===")
        algorithm_table = _algorithm_table(algorithm_sizes, incidents=10)
        print(algorithm_table.to_string(index=False))
        print(f"Average A* speedup: {algorithm_table['speedup'].mean():.2f}x")

        print("\n=== Mixed operations ===")
        mixed = _mixed_operations(operations, size=100)
        print(f"{mixed['operations']} operations in {mixed['total_ms']:.2f} ms ({mixed['ops_per_second']:.1f}/s)")
        print(f"Success rate: {mixed['success_rate']:.2f}%")

    return {
        "network_size": size_table,
        "complexity_exponent": exponent,
        "incident_load": load_table,
        "algorithms": algorithm_table,
        "mixed_operations": mixed,
    }


def _report(scheduler: DispatchScheduler, incident_id: str, location_id: str, kind: IncidentType, severity: int) -> None:
    incident = Incident(incident_id, scheduler.network.get_location(location_id), kind, severity)
    result = scheduler.report_incident(incident)
    if result is None:
        print(f" - {incident_id}: queued, no unit available")
    else:
        print(f" - {incident_id}: {result.unit.call_sign}, ETA {result.response_time:.1f} min ({result.path.describe()})")


def main() -> None:
    settings = config.load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    scheduler = build_scheduler(strategy=PathfindingStrategy(settings.algorithm))
    network = scheduler.network
    learner = AdaptiveWeightLearner(settings.learning_rate, settings.window_size)

    print("=== Emergency Dispatch Simulation ===")
    print(network.describe())
    print(scheduler.status_report().render())

    print("\nInitial incidents:")
    _report(scheduler, "INC001", "L4", IncidentType.MEDICAL, 5)
    _report(scheduler, "INC002", "L5", IncidentType.FIRE, 4)
    _report(scheduler, "INC003", "L7", IncidentType.POLICE, 3)
    _report(scheduler, "INC004", "L8", IncidentType.MEDICAL, 4)
    scheduler.resolve_incident("INC001")
    scheduler.resolve_incident("INC002")

    print("\nAlgorithm comparison:")
    scheduler.set_strategy(PathfindingStrategy.DIJKSTRA)
    _report(scheduler, "INC005", "L4", IncidentType.FIRE, 3)
    scheduler.set_strategy(PathfindingStrategy.ASTAR)
    _report(scheduler, "INC006", "L5", IncidentType.MEDICAL, 4)
    scheduler.resolve_incident("INC005")
    scheduler.resolve_incident("INC006")

    print("\nAdaptive learning:")
    london, manchester, birmingham = (network.get_location(i) for i in ("L1", "L2", "L3"))
    today = datetime.now()
    for hour, london_birmingham, birmingham_manchester in ((8, 145.0, 105.0), (14, 120.0, 90.0), (22, 100.0, 75.0)):
        stamp = today.replace(hour=hour, minute=0, second=0, microsecond=0)
        for _ in range(10):
            learner.record_travel_time(london, birmingham, london_birmingham, stamp)
            learner.record_travel_time(birmingham, manchester, birmingham_manchester, stamp)
    morning = learner.congestion_factor(london, birmingham, today.replace(hour=8))
    night = learner.congestion_factor(london, birmingham, today.replace(hour=22))
    print(f" - Morning congestion factor: {morning:.2f}x")
    print(f" - Night congestion factor: {night:.2f}x")
    applied = learner.apply_to_network(network, today)
    print(f" - Applied {len(applied)} learned factors to the network")

    print("\nCongestion on Manchester <-> Leeds:")
    leeds = network.get_location("L4")
    network.update_congestion(manchester, leeds, 2.5)
    network.update_congestion(leeds, manchester, 2.5)
    _report(scheduler, "INC007", "L4", IncidentType.MEDICAL, 5)
    scheduler.resolve_incident("INC007")

    print("\nRepositioning recommendations:")
    for recommendation in scheduler.reposition_units_proactively(settings.hotspot_count):
        print(f" - {recommendation}")
    print(scheduler.analyzer.analysis_report())

    print("\nSurge:")
    surge = [("L4", IncidentType.MEDICAL), ("L5", IncidentType.FIRE), ("L7", IncidentType.POLICE), ("L8", IncidentType.MEDICAL)]
    for i, (location_id, kind) in enumerate(surge):
        _report(scheduler, f"INC{100 + i:03d}", location_id, kind, 5 - i)
    for i in range(len(surge)):
        scheduler.resolve_incident(f"INC{100 + i:03d}")

    print("\nLoad test:")
    run_load_test()

    print("\nScalability:")
    run_scalability_suite()

    print()
    print(learner.generate_report())
    print()
    print(scheduler.metrics.generate_report())

    csv_path = settings.report_dir / "dispatches.csv"
    scheduler.metrics.export_csv(csv_path)
    pdf_path = settings.report_dir / "dispatches.pdf"
    pdf_path.write_bytes(scheduler.metrics.export_pdf())
    print(f"\nReports written to {settings.report_dir}")


if __name__ == "__main__":
    main()
