from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from emergency_dispatch.config import (
    DECAY_WINDOW_HOURS,
    MAX_SEVERITY,
    PATTERN_HOUR_TOLERANCE,
    SURGE_MULTIPLIER,
    SURGE_THRESHOLD,
    SURGE_WINDOW_HOURS,
)
from emergency_dispatch.models import Incident, IncidentType, Location

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncidentRecord:
    incident_type: IncidentType
    severity: int
    timestamp: datetime


@dataclass(frozen=True)
class HotspotScore:
    location: Location
    score: float
    incident_count: int

    def __str__(self) -> str:
        return f"{self.location.name}: {self.score:.2f} (n={self.incident_count})"


def _whole_hours(delta: timedelta) -> int:
    return int(delta.total_seconds() / 3600)


class PredictiveAnalyzer:
    """Scores locations by decayed incident history to forecast demand."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self.clock = clock
        self._history: dict[Location, list[IncidentRecord]] = {}
        self._hotspots: dict[Location, HotspotScore] = {}

    def record_incident(self, incident: Incident) -> None:
        record = IncidentRecord(incident.incident_type, incident.severity, incident.reported_at)
        self._history.setdefault(incident.location, []).append(record)
        self.update_hotspots()
        logger.debug(f"Recorded {incident.incident_id}; {self.tracked_locations} locations tracked")

    def update_hotspots(self) -> None:
        now = self.clock()
        self._hotspots = {
            location: HotspotScore(location, self._score(records, now), len(records))
            for location, records in self._history.items()
        }

    @staticmethod
    def _score(records: list[IncidentRecord], now: datetime) -> float:
        if not records:
            return 0.0

        frequency = severity = time_score = 0.0
        recent = 0
        for record in records:
            hours_ago = _whole_hours(now - record.timestamp)
            decay = math.exp(-hours_ago / DECAY_WINDOW_HOURS)
            frequency += decay
            severity += record.severity * decay
            hour_diff = abs(record.timestamp.hour - now.hour)
            time_score += (24 - hour_diff) / 24.0 * decay
            if hours_ago < SURGE_WINDOW_HOURS:
                recent += 1

        count = len(records)
        frequency /= count
        severity /= MAX_SEVERITY * count
        time_score /= count
        surge = SURGE_MULTIPLIER if recent > SURGE_THRESHOLD else 1.0
        return (frequency * 0.4 + severity * 0.4 + time_score * 0.2) * surge * 100

    def top_hotspots(self, n: int) -> list[HotspotScore]:
        ranked = sorted(self._hotspots.values(), key=lambda h: h.score, reverse=True)
        return ranked[:max(0, n)]

    def predict_incident_probability(self, location: Location, hours_ahead: int) -> float:
        records = self._history.get(location)
        if not records:
            return 0.0

        now = self.clock()
        target = now + timedelta(hours=hours_ahead)
        matching = sum(
            1
            for record in records
            if abs(record.timestamp.hour - target.hour) <= PATTERN_HOUR_TOLERANCE
            and record.timestamp.weekday() == target.weekday()
        )
        days = int((now - records[0].timestamp).total_seconds() / 86400)
        base_rate = len(records) / max(1, days)
        pattern = 1.0 + matching / len(records)
        return min(1.0, base_rate * pattern)

    def suggest_resource_allocation(self, total_units: int) -> dict[Location, int]:
        hotspots = self.top_hotspots(total_units)
        total_score = sum(h.score for h in hotspots)
        allocation = {}
        for hotspot in hotspots:
            share = hotspot.score / total_score if total_score > 0 else 0.0
            allocation[hotspot.location] = max(1, math.ceil(share * total_units))
        return allocation

    def history(self, location: Location) -> list[IncidentRecord]:
        return list(self._history.get(location, ()))

    @property
    def tracked_locations(self) -> int:
        return len(self._history)

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self._history.values())

    def analysis_report(self) -> str:
        lines = [
            "=== Predictive Analysis Report ===",
            f"Total locations tracked: {self.tracked_locations}",
            f"Total historical incidents: {self.total_records}",
            "",
            "Top 5 hotspots:",
        ]
        for rank, hotspot in enumerate(self.top_hotspots(5), start=1):
            lines.append(
                f"{rank}. {hotspot.location.name} - score {hotspot.score:.2f} (incidents: {hotspot.incident_count})"
            )
        return "\n".join(lines)
