"""
Geospatial helpers: great-circle distance and Maidenhead locators.
"""

from __future__ import annotations

import re
from math import atan2, cos, radians, sin, sqrt
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0

LatLon = Tuple[float, float]

_LOCATOR_RE = re.compile(r'^[A-R]{2}(?:[0-9]{2}(?:[A-X]{2}(?:[0-9]{2})?)?)?$')

# (longitude, latitude) size in degrees of each locator precision level
_CELL_SIZES = (
    (20.0, 10.0),
    (2.0, 1.0),
    (2.0 / 24.0, 1.0 / 24.0),
    (2.0 / 240.0, 1.0 / 240.0),
)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Great-circle distance in whole kilometres between two points in degrees."""
    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    delta_lat = radians(lat2 - lat1)
    delta_lon = radians(lon2 - lon1)

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    # Rounding can push a a hair above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return int(round(EARTH_RADIUS_KM * c))


def distance_between(a: Optional[LatLon], b: Optional[LatLon]) -> Optional[int]:
    """Distance in km, or None when either position is unknown."""
    if a is None or b is None:
        return None
    return haversine_km(a[0], a[1], b[0], b[1])


def is_valid_locator(locator: Optional[str]) -> bool:
    if not locator:
        return False
    return bool(_LOCATOR_RE.match(locator.strip().upper()))


def locator_to_latlon(locator: Optional[str]) -> Optional[LatLon]:
    """Convert a 2/4/6/8 character Maidenhead locator to its cell midpoint.

    Returns None for missing or malformed locators.
    """
    if not is_valid_locator(locator):
        return None
    loc = locator.strip().upper()

    lon = -180.0
    lat = -90.0
    pairs = [loc[i:i + 2] for i in range(0, len(loc), 2)]
    for level, pair in enumerate(pairs):
        lon_size, lat_size = _CELL_SIZES[level]
        if level % 2 == 0:
            base = 'A'
            lon += (ord(pair[0]) - ord(base)) * lon_size
            lat += (ord(pair[1]) - ord(base)) * lat_size
        else:
            lon += int(pair[0]) * lon_size
            lat += int(pair[1]) * lat_size

    lon_size, lat_size = _CELL_SIZES[len(pairs) - 1]
    return (lat + lat_size / 2.0, lon + lon_size / 2.0)


def latlon_to_locator(lat: float, lon: float, precision: int = 6) -> str:
    """Encode a position as a Maidenhead locator of 2, 4, 6 or 8 characters."""
    if precision not in (2, 4, 6, 8):
        raise ValueError("Locator precision must be 2, 4, 6 or 8")
    lon_rem = min(max(lon + 180.0, 0.0), 359.999999)
    lat_rem = min(max(lat + 90.0, 0.0), 179.999999)

    chars = []
    for level in range(precision // 2):
        lon_size, lat_size = _CELL_SIZES[level]
        lon_idx = int(lon_rem // lon_size)
        lat_idx = int(lat_rem // lat_size)
        lon_rem -= lon_idx * lon_size
        lat_rem -= lat_idx * lat_size
        if level % 2 == 0:
            base = 'A' if level == 0 else 'a'
            chars.append(chr(ord(base) + lon_idx))
            chars.append(chr(ord(base) + lat_idx))
        else:
            chars.append(str(lon_idx))
            chars.append(str(lat_idx))
    return ''.join(chars)
