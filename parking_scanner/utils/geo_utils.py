"""
Geographic utility functions.

Ellipsoidal distance calculations on the WGS84 ellipsoid.
"""

from __future__ import annotations

import math
from typing import Tuple

from pyproj import Geod

Coord = Tuple[float, float]  # (lat, lng)

WGS84 = Geod(ellps="WGS84")


def geodesic_distance(coord1: Coord, coord2: Coord) -> float:
    """
    Calculate the geodesic distance between two points in meters.

    Solves the inverse geodesic problem on the WGS84 ellipsoid, so results
    stay accurate for both neighbouring parkings (a few meters) and
    city-scale separations.

    Args:
        coord1: (lat, lng) in degrees.
        coord2: (lat, lng) in degrees.

    Returns:
        Distance in meters. NaN if any component is NaN.
    """
    lat1, lng1 = float(coord1[0]), float(coord1[1])
    lat2, lng2 = float(coord2[0]), float(coord2[1])

    if any(math.isnan(v) for v in (lat1, lng1, lat2, lng2)):
        return math.nan

    if (lat1, lng1) == (lat2, lng2):
        return 0.0

    # pyproj takes longitude first
    _fwd_az, _back_az, distance = WGS84.inv(lng1, lat1, lng2, lat2)
    return float(distance)
