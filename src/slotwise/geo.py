from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, long1: float, lat2: float, long2: float) -> int:
    """Great-circle distance between two points, rounded to whole kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(long2 - long1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Float error can push a just past 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.asin(math.sqrt(a))
    return int(round(EARTH_RADIUS_KM * c))


def raw_travel_minutes(km: float, speed_kmh: float = 50) -> float:
    return km * 60 / speed_kmh


def travel_minutes(km: float, speed_kmh: float = 50, increment_minutes: int = 30) -> int:
    """Travel time for ``km`` at ``speed_kmh``, rounded up to ``increment_minutes``."""
    if km <= 0:
        return 0
    raw = raw_travel_minutes(km, speed_kmh)
    return int(math.ceil(raw / increment_minutes)) * increment_minutes
