"""
Geodesic helpers for issue clustering.

Distances use the haversine formula on a sphere with the WGS84 equatorial
radius. This is an approximation of true ellipsoidal distance (error below
0.5%), which is more than enough for a 100 m duplicate radius.
"""

import math
from typing import NamedTuple

EARTH_RADIUS_M = 6_378_137.0
METERS_PER_DEGREE_LAT = 111_320.0


class BoundingBox(NamedTuple):
    """Degree window around a point, used as a cheap pre-filter."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float


def haversine_distance_m(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """
    Great-circle distance between two points in meters.

    Args:
        lon1: Longitude of the first point (degrees)
        lat1: Latitude of the first point (degrees)
        lon2: Longitude of the second point (degrees)
        lat2: Latitude of the second point (degrees)

    Returns:
        Distance in meters. NaN inputs propagate to a NaN result.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bounding_box(lon: float, lat: float, radius_m: float) -> BoundingBox:
    """
    Build a degree window that encloses a circle of radius_m around a point.

    Longitude span widens with latitude; near the poles cos(lat) goes to zero,
    so the longitude delta is clamped to the full [-180, 180] range.

    Args:
        lon: Center longitude (degrees)
        lat: Center latitude (degrees)
        radius_m: Radius in meters

    Returns:
        BoundingBox around the point
    """
    delta_lat = radius_m / METERS_PER_DEGREE_LAT
    meters_per_degree_lon = METERS_PER_DEGREE_LAT * math.cos(math.radians(lat))
    if meters_per_degree_lon <= 1e-9:
        delta_lon = 180.0
    else:
        delta_lon = min(radius_m / meters_per_degree_lon, 180.0)

    return BoundingBox(
        min_lon=lon - delta_lon,
        min_lat=lat - delta_lat,
        max_lon=lon + delta_lon,
        max_lat=lat + delta_lat,
    )


def is_valid_coordinate_pair(coordinates: object) -> bool:
    """
    Check for a [longitude, latitude] pair of finite numbers within range.

    Booleans are rejected even though they are ints in Python.
    """
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        return False
    lon, lat = coordinates
    for value in (lon, lat):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0
