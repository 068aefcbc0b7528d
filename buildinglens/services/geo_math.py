"""Great-circle distance and bearing helpers.

Every function here is pure and accepts anything exposing ``latitude`` and
``longitude`` attributes in degrees. Inputs are not validated: NaN propagates
to the result and infinities produce NaN.
"""

import math
from typing import NamedTuple, Optional

EARTH_RADIUS_METERS = 6371000.0


class BearingCalculation(NamedTuple):
    distance: float
    bearing: float
    bearing_diff: Optional[float] = None


def normalize_angle(degrees: float) -> float:
    """Reduce ``degrees`` into [0, 360), e.g. -45 -> 315 and 720 -> 0."""
    normalized = degrees % 360.0
    # Tiny negative inputs round up to exactly 360.0 in floating point.
    if normalized >= 360.0:
        return 0.0
    return normalized


def distance_meters(a, b) -> float:
    """Haversine distance in meters between two coordinates."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def bearing_degrees(from_, to) -> float:
    """Forward azimuth from ``from_`` to ``to``; 0 is north, clockwise positive."""
    lat1 = math.radians(from_.latitude)
    lat2 = math.radians(to.latitude)
    delta_lon = math.radians(to.longitude - from_.longitude)

    y = math.sin(delta_lon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(delta_lon)
    return normalize_angle(math.degrees(math.atan2(y, x)))


def angular_difference(bearing1: float, bearing2: float) -> float:
    """Smallest rotation in [0, 180] between two bearings."""
    diff = abs(normalize_angle(bearing1) - normalize_angle(bearing2))
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def bearing_and_distance(from_, to, heading: Optional[float] = None) -> BearingCalculation:
    distance = distance_meters(from_, to)
    bearing = bearing_degrees(from_, to)
    if heading is None:
        return BearingCalculation(distance, bearing)
    return BearingCalculation(distance, bearing, angular_difference(bearing, heading))
