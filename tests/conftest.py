from datetime import datetime

import pytest

from emergency_dispatch.demo import build_uk_network
from emergency_dispatch.metrics import PerformanceMetrics
from emergency_dispatch.models import Location, LocationKind
from emergency_dispatch.network import EmergencyNetwork
from emergency_dispatch.prediction import PredictiveAnalyzer
from emergency_dispatch.system import DispatchScheduler

MONDAY_NOON = datetime(2024, 1, 8, 12, 0)


@pytest.fixture
def london() -> Location:
    return Location("L1", "London", LocationKind.DISPATCH_CENTER, 51.5074, -0.1278)


@pytest.fixture
def birmingham() -> Location:
    return Location("L3", "Birmingham", LocationKind.DISPATCH_CENTER, 52.4862, -1.8904)


@pytest.fixture
def manchester() -> Location:
    return Location("L2", "Manchester", LocationKind.CITY, 53.4808, -2.2426)


@pytest.fixture
def triangle(london, birmingham, manchester) -> EmergencyNetwork:
    network = EmergencyNetwork()
    network.add_connection(london, birmingham, 163, 120)
    network.add_connection(birmingham, manchester, 135, 90)
    network.add_connection(london, manchester, 290, 250)
    return network


@pytest.fixture
def uk_network() -> EmergencyNetwork:
    return build_uk_network()


@pytest.fixture
def metrics() -> PerformanceMetrics:
    return PerformanceMetrics()


@pytest.fixture
def scheduler(triangle, metrics) -> DispatchScheduler:
    return DispatchScheduler(triangle, PredictiveAnalyzer(clock=lambda: MONDAY_NOON), metrics)
