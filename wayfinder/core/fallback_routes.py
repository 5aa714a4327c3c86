"""
Geometric route estimates used when no live routing answer is available.
"""

import math

from wayfinder.core.geo_utils import distance_between
from wayfinder.core.schemas import Coordinates, RouteEstimate, RouteStep, TravelMode

# Real paths are longer than the straight line between two points
PATH_INFLATION_FACTOR = 1.3

# Average speeds in meters per minute
AVERAGE_SPEED_M_PER_MIN: dict[str, float] = {
    "WALK": 80.0,  # ~4.8 km/h
    "TRANSIT": 400.0,  # ~24 km/h including stops
    "DRIVE": 500.0,  # ~30 km/h in city traffic
}

_MODE_LABELS = {
    "WALK": "walk",
    "TRANSIT": "transit ride",
    "DRIVE": "drive",
}


def estimate_duration(distance_m: float, mode: TravelMode = "WALK") -> int:
    """
    Estimate travel time in minutes for an already path-inflated distance.

    Args:
        distance_m: Distance in meters
        mode: Transportation mode (WALK, TRANSIT or DRIVE)

    Returns:
        Travel time in minutes, never less than 1
    """
    speed = AVERAGE_SPEED_M_PER_MIN.get(mode, AVERAGE_SPEED_M_PER_MIN["WALK"])
    return max(1, math.ceil(distance_m / speed))


def synthesize(
    origin: Coordinates, destination: Coordinates, mode: TravelMode = "WALK"
) -> RouteEstimate:
    """
    Build a route estimate from geometry alone.

    The great-circle distance is inflated by PATH_INFLATION_FACTOR and divided
    by the mode's average speed. The result carries a single step labelled as
    an estimate and an empty polyline: no path geometry is invented.
    """
    straight_line = distance_between(origin, destination)
    inflated = straight_line * PATH_INFLATION_FACTOR
    duration = estimate_duration(inflated, mode)
    distance = round(inflated)

    label = _MODE_LABELS.get(mode, "trip")
    step = RouteStep(
        mode="estimate",
        instruction=f"Estimated {duration} min {label} ({distance} m, no live directions)",
        duration=duration,
        distance=distance,
    )

    return RouteEstimate(
        steps=[step],
        total_duration=duration,
        total_distance=distance,
        polyline="",
        source="estimate",
    )
