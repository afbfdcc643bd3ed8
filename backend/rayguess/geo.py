"""Coordinates and great-circle distance."""
import math
from dataclasses import dataclass

from .errors import ValidationError, ValidationErrorKind

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def to_dict(self):
        return {'lat': self.latitude, 'lng': self.longitude}


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between ``a`` and ``b`` in kilometres.

    Callers validate ranges first; out-of-range input is not checked here.
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [a.latitude, a.longitude, b.latitude, b.longitude])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # rounding can push near-antipodal points just past 1
    h = min(h, 1.0)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _as_degrees(value, limit):
    # bool is an int subclass; a client sending true/false is not a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(ValidationErrorKind.INVALID_COORDINATE)
    value = float(value)
    if not math.isfinite(value) or not -limit <= value <= limit:
        raise ValidationError(ValidationErrorKind.INVALID_COORDINATE)
    return value


def parse_coordinate(data) -> Coordinate:
    """Build a validated Coordinate from a client payload.

    Accepts ``{'lat', 'lng'}`` as sent by the map client, or
    ``{'latitude', 'longitude'}``.
    """
    if not isinstance(data, dict):
        raise ValidationError(ValidationErrorKind.INVALID_COORDINATE)
    lat = data.get('lat', data.get('latitude'))
    lng = data.get('lng', data.get('longitude'))
    return Coordinate(latitude=_as_degrees(lat, 90.0), longitude=_as_degrees(lng, 180.0))
