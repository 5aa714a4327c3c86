"""
Geographic utilities for distance calculations and cache keys.
"""

import math

from wayfinder.core.schemas import Coordinates

EARTH_RADIUS_M = 6371000  # Earth's mean radius in meters


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lng1: Coordinates of point 1
        lat2, lng2: Coordinates of point 2

    Returns:
        Distance in meters
    """
    # Convert to radians
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    # Haversine formula
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_between(origin: Coordinates, destination: Coordinates) -> float:
    """Straight-line distance in meters between two coordinate pairs."""
    return haversine_distance(
        origin.latitude, origin.longitude, destination.latitude, destination.longitude
    )


def coordinate_key(coords: Coordinates, precision: int = 3) -> tuple[float, float]:
    """Round a coordinate pair so nearby points share a cache key.

    Three decimal places is roughly 100 m at the equator.
    """
    return (round(coords.latitude, precision), round(coords.longitude, precision))


def format_walk_label(minutes: int, approximate: bool = False) -> str:
    """Human label for a walking duration, e.g. '8 min walk'."""
    prefix = "~" if approximate else ""
    return f"{prefix}{minutes} min walk"
