"""
Distance and ETA estimation using the Haversine formula.

Assumption
----------
Great-circle distance stands in for a routing engine.  It is good enough
to rank drivers against a pickup point and to give a rough ETA; road
distances are the job of an external mapping provider.

Complexity: O(1) per call.
"""

import math
from datetime import datetime, timedelta

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def eta_minutes(distance_km: float, speed_kmh: float) -> int:
    """Whole minutes needed to cover *distance_km*, rounded up."""
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be positive")
    return math.ceil(distance_km / speed_kmh * 60)


def estimate_arrival(
    now: datetime, distance_km: float, speed_kmh: float
) -> datetime:
    return now + timedelta(minutes=eta_minutes(distance_km, speed_kmh))
