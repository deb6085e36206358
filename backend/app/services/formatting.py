"""
ArchiRoutes Backend: Route Formatting Helpers
==============================================

What:  Human-readable distance and duration strings.
Who:   Straight-line instruction text, RoutingService log lines, API consumers.
"""

import math


def format_duration(seconds: float) -> str:
    """
    "{h}h {m}min" from one hour up, otherwise "{m} min". Minutes are floored.

    >>> format_duration(90)
    '1 min'
    >>> format_duration(3660)
    '1h 1min'
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}min"
    return f"{minutes} min"


def format_distance(meters: float) -> str:
    """
    "{km} km" with one decimal from 1000 m up, otherwise whole meters.

    >>> format_distance(500)
    '500 m'
    >>> format_distance(1500)
    '1.5 km'
    """
    if meters >= 1000:
        return f"{meters / 1000:.1f} km"
    # Half-up rounding (round() would turn 0.5 into 0)
    return f"{math.floor(meters + 0.5)} m"
