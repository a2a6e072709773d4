# quickattend/backend/tools/geo_verifier.py

import math
from typing import Tuple

from ..models.redis_models import Session

EARTH_RADIUS_METERS = 6371e3


def get_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points with the Haversine formula.

    Args:
        lat1, lon1: First point in degrees.
        lat2, lon2: Second point in degrees.

    Returns:
        float: Distance in meters.
    """
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def verify_location(session: Session, lat: float, lng: float) -> Tuple[bool, float]:
    """
    Checks whether a student's position lies inside the session geofence.

    Returns:
        (bool, float): Whether the point is within the session radius, and
        the distance to the session location in meters.
    """
    distance = get_distance(session.location.lat, session.location.lng, lat, lng)
    return distance <= session.radius_meters, distance
