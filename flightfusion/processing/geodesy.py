"""Great-circle helpers on a spherical Earth."""

from __future__ import annotations

import math

from flightfusion.recording.models import GeoPoint

EARTH_RADIUS_M = 6_371_000.0


def normalize_heading(degrees: float) -> float:
    """Wrap an angle into [0, 360)."""
    result = degrees % 360.0
    # -1e-15 % 360 rounds up to 360.0
    if result >= 360.0:
        result -= 360.0
    return result


def destination_point(origin: GeoPoint, bearing_deg: float,
                      distance_m: float) -> GeoPoint:
    """Haversine direct problem: travel distance_m along bearing_deg from origin."""
    lat1 = math.radians(origin.latitude)
    lon1 = math.radians(origin.longitude)
    bearing = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lon2 = lon1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    return GeoPoint(latitude=math.degrees(lat2), longitude=math.degrees(lon2))


def initial_bearing(start: GeoPoint, end: GeoPoint) -> float:
    """Forward azimuth of the great circle from start to end, in [0, 360)."""
    lat1 = math.radians(start.latitude)
    lat2 = math.radians(end.latitude)
    delta_lon = math.radians(end.longitude - start.longitude)

    y = math.sin(delta_lon) * math.cos(lat2)
    x = (math.cos(lat1) * math.sin(lat2)
         - math.sin(lat1) * math.cos(lat2) * math.cos(delta_lon))
    return normalize_heading(math.degrees(math.atan2(y, x)))
