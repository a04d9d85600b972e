from emergency_dispatch.models import (
    Incident,
    IncidentStatus,
    IncidentType,
    Location,
    LocationKind,
    ResponseUnit,
    Route,
    UnitStatus,
    UnitType,
)


def test_location_identity_is_id_only() -> None:
    first = Location("X1", "Depot", LocationKind.DISPATCH_CENTER, 1.0, 2.0)
    renamed = Location("X1", "Other name", LocationKind.CITY, 9.0, 9.0)

    assert first == renamed
    assert hash(first) == hash(renamed)
    assert len({first, renamed}) == 1


def test_severity_is_clamped_not_rejected(london) -> None:
    low = Incident("I1", london, IncidentType.FIRE, 0)
    high = Incident("I2", london, IncidentType.FIRE, 9)

    assert low.severity == 1
    assert high.severity == 5
    assert high.priority_score == 50
    assert low.status is IncidentStatus.REPORTED


def test_route_congestion_never_drops_below_baseline(london, birmingham) -> None:
    route = Route(london, birmingham, 163, 120)
    assert route.weight == 120

    route.congestion_factor = 1.5
    assert route.effective_travel_time == 180

    route.congestion_factor = 0.4
    assert route.congestion_factor == 1.0
    assert route.weight == 120


def test_capabilities_are_fixed_by_unit_type(london) -> None:
    ambulance = ResponseUnit("U1", "A1", UnitType.AMBULANCE, london)
    helicopter = ResponseUnit("U2", "H1", UnitType.RESCUE_HELICOPTER, london)

    assert ambulance.can_respond_to(IncidentType.MEDICAL)
    assert not ambulance.can_respond_to(IncidentType.FIRE)
    assert not ambulance.can_respond_to(IncidentType.RESCUE)
    assert all(helicopter.can_respond_to(kind) for kind in IncidentType)


def test_unit_assignment_cycle(london) -> None:
    unit = ResponseUnit("U1", "A1", UnitType.AMBULANCE, london)
    incident = Incident("I1", london, IncidentType.MEDICAL, 3)

    unit.assign_to(incident)
    assert unit.status is UnitStatus.DISPATCHED
    assert unit.current_incident is incident
    assert not unit.is_available

    unit.complete_incident()
    assert unit.is_available
    assert unit.current_incident is None
