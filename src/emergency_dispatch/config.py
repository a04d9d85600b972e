import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[2]

# Routing model
EARTH_RADIUS_KM = 6371.0
REFERENCE_SPEED_KMH = 80.0

# Candidate score = route_time / (severity * SEVERITY_WEIGHT + SEVERITY_OFFSET)
SEVERITY_WEIGHT = 0.2
SEVERITY_OFFSET = 0.8
MIN_SEVERITY = 1
MAX_SEVERITY = 5

# Hotspot scoring
DECAY_WINDOW_HOURS = 168.0
SURGE_WINDOW_HOURS = 24
SURGE_THRESHOLD = 3
SURGE_MULTIPLIER = 1.5
PATTERN_HOUR_TOLERANCE = 2


@dataclass(frozen=True)
class DispatchSettings:
    learning_rate: float = 0.3
    window_size: int = 50
    algorithm: str = "ASTAR"
    hotspot_count: int = 3
    log_level: str = "INFO"
    report_dir: Path = BASE_DIR / "reports"


def _read(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a {cast.__name__}, got {raw!r}") from exc


def load_settings() -> DispatchSettings:
    """
    Read the DISPATCH_* environment variables. Only entry points call this,
    so a bad value fails the run that uses it rather than every import.
    """
    defaults = DispatchSettings()
    settings = DispatchSettings(
        learning_rate=_read("DISPATCH_LEARNING_RATE", defaults.learning_rate, float),
        window_size=_read("DISPATCH_WINDOW_SIZE", defaults.window_size, int),
        algorithm=_read("DISPATCH_ALGORITHM", defaults.algorithm, str).upper(),
        hotspot_count=_read("DISPATCH_HOTSPOT_COUNT", defaults.hotspot_count, int),
        log_level=_read("DISPATCH_LOG_LEVEL", defaults.log_level, str).upper(),
        report_dir=_read("DISPATCH_REPORT_DIR", defaults.report_dir, Path),
    )
    _validate_settings(settings)
    return settings


def _validate_settings(settings: DispatchSettings) -> None:
    if not 0.0 < settings.learning_rate <= 1.0:
        raise ValueError("DISPATCH_LEARNING_RATE must be in (0, 1]")
    if settings.window_size < 1:
        raise ValueError("DISPATCH_WINDOW_SIZE must be a positive int")
    if settings.algorithm not in {"DIJKSTRA", "ASTAR"}:
        raise ValueError("DISPATCH_ALGORITHM must be DIJKSTRA or ASTAR")
    if settings.hotspot_count < 1:
        raise ValueError("DISPATCH_HOTSPOT_COUNT must be a positive int")
