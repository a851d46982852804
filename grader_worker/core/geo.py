"""Geospatial helpers."""

import math
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

EARTH_RADIUS_METERS = 6_371_000.0

Point = Union[Mapping[str, Any], Sequence[Any]]


def _coerce_coordinate(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def _coerce_point(point: Optional[Point]) -> Optional[Tuple[float, float]]:
    if point is None:
        return None
    if isinstance(point, Mapping):
        lat, lng = point.get("lat"), point.get("lng")
    else:
        try:
            lat, lng = point
        except (TypeError, ValueError):
            return None
    lat, lng = _coerce_coordinate(lat), _coerce_coordinate(lng)
    if lat is None or lng is None:
        return None
    return lat, lng


def haversine_meters(origin: Optional[Point], target: Optional[Point]) -> Optional[float]:
    """Great-circle distance in meters, or None when either point is unusable.

    Points are ``(lat, lng)`` pairs or mappings with ``lat``/``lng`` keys.
    """
    start = _coerce_point(origin)
    end = _coerce_point(target)
    if start is None or end is None:
        return None

    phi1 = math.radians(start[0])
    phi2 = math.radians(end[0])
    dphi = math.radians(end[0] - start[0])
    dlambda = math.radians(end[1] - start[1])

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
