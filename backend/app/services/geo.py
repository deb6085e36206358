"""
ArchiRoutes Backend: Geographic Helpers
========================================

What:  Great-circle distance between two latitude/longitude points.
Who:   StraightLineBackend (fallback route distance) and its tests.
"""

import math

# Mean Earth radius used by the haversine formula
EARTH_RADIUS_METERS = 6_371_000.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in meters between (lat1, lon1) and (lat2, lon2), in degrees.

    Example:
        >>> round(haversine_distance(0, 0, 0, 1))
        111195
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
