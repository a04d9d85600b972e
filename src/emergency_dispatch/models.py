from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from emergency_dispatch.config import MAX_SEVERITY, MIN_SEVERITY


class LocationKind(str, Enum):
    CITY = "city"
    DISPATCH_CENTER = "dispatch_center"
    INCIDENT_SITE = "incident_site"


class IncidentType(str, Enum):
    FIRE = "fire"
    MEDICAL = "medical"
    POLICE = "police"
    HAZMAT = "hazmat"
    RESCUE = "rescue"


class IncidentStatus(str, Enum):
    REPORTED = "reported"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class UnitType(str, Enum):
    AMBULANCE = "ambulance"
    FIRE_TRUCK = "fire_truck"
    POLICE_CAR = "police_car"
    HAZMAT_TEAM = "hazmat_team"
    RESCUE_HELICOPTER = "rescue_helicopter"


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    DISPATCHED = "dispatched"
    ON_SCENE = "on_scene"
    RETURNING = "returning"


CAPABILITY_MAP = {
    UnitType.AMBULANCE: frozenset({IncidentType.MEDICAL}),
    UnitType.FIRE_TRUCK: frozenset({IncidentType.FIRE}),
    UnitType.POLICE_CAR: frozenset({IncidentType.POLICE}),
    UnitType.HAZMAT_TEAM: frozenset({IncidentType.HAZMAT}),
    UnitType.RESCUE_HELICOPTER: frozenset(IncidentType),
}


@dataclass(frozen=True)
class Location:
    """A node of the network. Identity is the id alone."""

    location_id: str
    name: str = field(compare=False)
    kind: LocationKind = field(compare=False)
    latitude: float = field(compare=False)
    longitude: float = field(compare=False)

    def __str__(self) -> str:
        return f"{self.name} ({self.location_id}) [{self.kind.value}]"


@dataclass(eq=False)
class Route:
    """
    A directed connection. The reverse direction is a separate Route with its
    own congestion state.
    """

    source: Location
    destination: Location
    distance_km: float
    base_travel_time_min: float
    _congestion_factor: float = field(default=1.0, init=False, repr=False)

    @property
    def congestion_factor(self) -> float:
        return self._congestion_factor

    @congestion_factor.setter
    def congestion_factor(self, value: float) -> None:
        self._congestion_factor = max(1.0, float(value))

    @property
    def effective_travel_time(self) -> float:
        return self.base_travel_time_min * self._congestion_factor

    @property
    def weight(self) -> float:
        return self.effective_travel_time

    def __str__(self) -> str:
        return (
            f"{self.source.name} -> {self.destination.name} "
            f"({self.distance_km:.2f} km, {self.base_travel_time_min:.2f} min, "
            f"congestion: {self._congestion_factor:.2f}x)"
        )


def clamp_severity(severity: int) -> int:
    return min(MAX_SEVERITY, max(MIN_SEVERITY, int(severity)))


@dataclass(eq=False)
class Incident:
    incident_id: str
    location: Location
    incident_type: IncidentType
    severity: int
    reported_at: datetime = field(default_factory=datetime.now)
    status: IncidentStatus = IncidentStatus.REPORTED
    assigned_unit: Optional[ResponseUnit] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.severity = clamp_severity(self.severity)

    @property
    def priority_score(self) -> int:
        return self.severity * 10

    @property
    def priority_key(self) -> tuple[int, datetime]:
        """Higher severity first, then first come first served."""
        return -self.severity, self.reported_at

    def assign(self, unit: ResponseUnit) -> None:
        self.assigned_unit = unit
        self.status = IncidentStatus.ASSIGNED

    def __str__(self) -> str:
        return (
            f"Incident[{self.incident_id}]: {self.incident_type.value} at {self.location.name} "
            f"(severity {self.severity}, {self.status.value})"
        )


@dataclass(eq=False)
class ResponseUnit:
    unit_id: str
    call_sign: str
    unit_type: UnitType
    location: Location
    status: UnitStatus = UnitStatus.AVAILABLE
    current_incident: Optional[Incident] = field(default=None, repr=False)

    @property
    def is_available(self) -> bool:
        return self.status is UnitStatus.AVAILABLE

    @property
    def capabilities(self) -> frozenset[IncidentType]:
        return CAPABILITY_MAP[self.unit_type]

    def can_respond_to(self, incident_type: IncidentType) -> bool:
        return incident_type in self.capabilities

    def assign_to(self, incident: Incident) -> None:
        self.current_incident = incident
        self.status = UnitStatus.DISPATCHED

    def complete_incident(self) -> None:
        self.current_incident = None
        self.status = UnitStatus.AVAILABLE

    def __str__(self) -> str:
        return f"{self.call_sign} [{self.unit_type.value}] at {self.location.name} - {self.status.value}"
