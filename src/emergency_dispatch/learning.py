"""
Online learning of per-edge travel times.

Each directed edge keeps a sliding window of observed travel times and an
exponential moving average. The congestion factor blends time-of-day,
day-of-week and recent-trend ratios against the window mean. Nothing here
writes to the network on its own; apply_to_network is an explicit call.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

import numpy as np

from emergency_dispatch.config import PATTERN_HOUR_TOLERANCE
from emergency_dispatch.models import Location
from emergency_dispatch.network import EmergencyNetwork

logger = logging.getLogger(__name__)

EdgeKey = tuple[str, str]

TIME_OF_DAY_WEIGHT = 0.4
DAY_OF_WEEK_WEIGHT = 0.3
TREND_WEIGHT = 0.3
TREND_SAMPLE = 5
TREND_MIN_SAMPLES = 3
MIN_MEAN = 0.1


@dataclass(frozen=True)
class TravelObservation:
    minutes: float
    timestamp: datetime


@dataclass(frozen=True)
class LearningStatistics:
    edges_learned: int
    total_observations: int
    learning_rate: float
    window_size: int
    average_accuracy: float


class AdaptiveWeightLearner:
    def __init__(self, learning_rate: float, window_size: int) -> None:
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError("learning_rate must be in (0, 1]")
        if window_size < 1:
            raise ValueError("window_size must be a positive int")
        self.learning_rate = learning_rate
        self.window_size = window_size
        self._history: dict[EdgeKey, deque[TravelObservation]] = {}
        self._weights: dict[EdgeKey, float] = {}

    @staticmethod
    def _key(source: Location, destination: Location) -> EdgeKey:
        return source.location_id, destination.location_id

    def record_travel_time(
        self,
        source: Location,
        destination: Location,
        minutes: float,
        timestamp: Optional[datetime] = None,
    ) -> float:
        """Store an observation and return the updated learned weight."""
        key = self._key(source, destination)
        window = self._history.setdefault(key, deque(maxlen=self.window_size))
        window.append(TravelObservation(float(minutes), timestamp or datetime.now()))

        current = self._weights.get(key, float(minutes))
        updated = self.learning_rate * minutes + (1 - self.learning_rate) * current
        self._weights[key] = updated
        return updated

    def predicted_weight(self, source: Location, destination: Location) -> Optional[float]:
        return self._weights.get(self._key(source, destination))

    def observations(self, source: Location, destination: Location) -> list[TravelObservation]:
        return list(self._history.get(self._key(source, destination), ()))

    def congestion_factor(self, source: Location, destination: Location, at: Optional[datetime] = None) -> float:
        window = self._history.get(self._key(source, destination))
        if not window:
            return 1.0

        at = at or datetime.now()
        times = np.array([obs.minutes for obs in window], dtype=float)
        divisor = max(MIN_MEAN, float(times.mean()))

        time_of_day = self._ratio(
            [obs.minutes for obs in window if abs(obs.timestamp.hour - at.hour) <= PATTERN_HOUR_TOLERANCE],
            divisor,
        )
        day_of_week = self._ratio(
            [obs.minutes for obs in window if obs.timestamp.weekday() == at.weekday()],
            divisor,
        )
        trend = self._trend_factor(times)
        return TIME_OF_DAY_WEIGHT * time_of_day + DAY_OF_WEEK_WEIGHT * day_of_week + TREND_WEIGHT * trend

    @staticmethod
    def _ratio(matching: list[float], divisor: float) -> float:
        if not matching:
            return 1.0
        return float(np.mean(matching)) / divisor

    @staticmethod
    def _trend_factor(times: np.ndarray) -> float:
        if len(times) < TREND_MIN_SAMPLES:
            return 1.0
        recent = times[-TREND_SAMPLE:]
        slope = np.polyfit(np.arange(len(recent), dtype=float), recent, 1)[0]
        factor = 1.0 + (slope / max(MIN_MEAN, float(recent.mean()))) * 2.0
        return float(np.clip(factor, 0.5, 2.0))

    def apply_to_network(
        self,
        network: EmergencyNetwork,
        at: Optional[datetime] = None,
        edges: Optional[Iterable[tuple[Location, Location]]] = None,
    ) -> dict[EdgeKey, float]:
        """Write the current factors back into the network's routes."""
        at = at or datetime.now()
        if edges is None:
            pairs = []
            for source_id, destination_id in self._history:
                source = network.get_location(source_id)
                destination = network.get_location(destination_id)
                if source is not None and destination is not None:
                    pairs.append((source, destination))
        else:
            pairs = list(edges)

        applied = {}
        for source, destination in pairs:
            factor = self.congestion_factor(source, destination, at)
            network.update_congestion(source, destination, factor)
            applied[self._key(source, destination)] = factor
            logger.info(f"Applied learned factor {factor:.2f}x to {source.name} -> {destination.name}")
        return applied

    def _average_accuracy(self) -> float:
        errors = []
        for key, window in self._history.items():
            predicted = self._weights.get(key)
            if predicted is None or not window:
                continue
            actual = float(np.mean([obs.minutes for obs in window]))
            if actual <= 0:
                continue
            errors.append(abs(predicted - actual) / actual)
        if not errors:
            return 0.0
        return (1.0 - float(np.mean(errors))) * 100

    def statistics(self) -> LearningStatistics:
        return LearningStatistics(
            edges_learned=len(self._weights),
            total_observations=sum(len(window) for window in self._history.values()),
            learning_rate=self.learning_rate,
            window_size=self.window_size,
            average_accuracy=self._average_accuracy(),
        )

    def generate_report(self) -> str:
        stats = self.statistics()
        lines = [
            "=== Adaptive Learning Report ===",
            f"Learning rate:        {stats.learning_rate:.3f}",
            f"Window size:          {stats.window_size} observations",
            f"Edges learned:        {stats.edges_learned}",
            f"Total observations:   {stats.total_observations}",
            f"Prediction accuracy:  {stats.average_accuracy:.2f}%",
            "",
            "Most observed routes:",
        ]
        ranked = sorted(self._history.items(), key=lambda item: len(item[1]), reverse=True)
        for rank, ((source_id, destination_id), window) in enumerate(ranked[:5], start=1):
            lines.append(f"{rank}. {source_id} -> {destination_id}")
            lines.append(f"   Observations: {len(window)}")
            learned = self._weights.get((source_id, destination_id))
            if learned is not None:
                lines.append(f"   Learned weight: {learned:.2f} min")
        return "\n".join(lines)
