"""
Geometry utilities: point-in-polygon containment and great-circle distance.

Coordinates:
- Points are (latitude, longitude) pairs.
- Polygon rings are lists of (longitude, latitude) vertices, GeoJSON order.

Boundary rule (half-open ray casting):
- A point on the west or south edge of a ring is inside.
- A point on the east or north edge of a ring is outside.
- Vertices follow the same rule (the south-west corner of a square is inside,
  the north-east corner is outside).
"""

import math
from typing import Iterable, Sequence, Tuple

from app.core.errors import ValidationError

EARTH_RADIUS_METERS = 6371000

Point = Tuple[float, float]


def validate_coordinate(latitude, longitude) -> Point:
    """
    Validate and normalise a coordinate pair.

    Raises:
        ValidationError: if either value is missing, non-numeric, non-finite
            or out of range.
    """
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise ValidationError(
            "Invalid coordinates",
            {"latitude": latitude, "longitude": longitude},
        )

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValidationError("Coordinates must be finite", {"latitude": lat, "longitude": lon})
    if not -90 <= lat <= 90:
        raise ValidationError("Latitude must be within [-90, 90]", {"latitude": lat})
    if not -180 <= lon <= 180:
        raise ValidationError("Longitude must be within [-180, 180]", {"longitude": lon})
    return lat, lon


def point_in_ring(latitude: float, longitude: float, ring: Sequence[Sequence[float]]) -> bool:
    """Odd-even ray casting against a single ring. Rings with < 3 vertices contain nothing."""
    if ring is None or len(ring) < 3:
        return False

    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > latitude) != (yj > latitude):
            x_cross = (xj - xi) * (latitude - yi) / (yj - yi) + xi
            if longitude < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_polygon(point: Point, rings: Iterable[Sequence[Sequence[float]]]) -> bool:
    """
    Test whether a (lat, lon) point lies inside a polygon made of one or more rings.

    Ring containment is combined by XOR, so a hole inside an outer ring
    removes its area and disjoint parts of a multi-part shape each count.
    An empty or degenerate polygon returns False.
    """
    if not rings:
        return False

    latitude, longitude = point
    inside = False
    for ring in rings:
        if point_in_ring(latitude, longitude, ring):
            inside = not inside
    return inside


def haversine_distance(p1: Point, p2: Point) -> float:
    """Great-circle distance in meters between two (lat, lon) points."""
    lat1, lon1 = p1
    lat2, lon2 = p2
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)
    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
