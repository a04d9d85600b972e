from __future__ import annotations

import math

from emergency_dispatch.config import EARTH_RADIUS_KM, REFERENCE_SPEED_KMH
from emergency_dispatch.models import Location


def haversine_km(origin: Location, target: Location) -> float:
    lat1, lon1 = math.radians(origin.latitude), math.radians(origin.longitude)
    lat2, lon2 = math.radians(target.latitude), math.radians(target.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def travel_time_lower_bound_min(origin: Location, target: Location) -> float:
    """Great-circle travel time in minutes at the reference speed."""
    return haversine_km(origin, target) / REFERENCE_SPEED_KMH * 60.0
