from __future__ import annotations

import math
from typing import Optional

from .models import Coordinates


EARTH_RADIUS_KM = 6371.0088
MILES_PER_KM = 0.621371


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c * MILES_PER_KM


def distance_between(
    a: Optional[Coordinates],
    b: Optional[Coordinates],
) -> Optional[float]:
    """Miles between two points, or None when either side has no coordinates."""

    if a is None or b is None:
        return None
    return haversine_miles(a.latitude, a.longitude, b.latitude, b.longitude)
