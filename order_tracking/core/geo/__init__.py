"""
Геодезия и обратное геокодирование.
"""

from order_tracking.core.geo.distance import (
    EARTH_RADIUS_M,
    InvalidCoordinateError,
    distance_meters,
    haversine_m,
    is_valid_coordinate,
)
from order_tracking.core.geo.service import ReverseGeocoder

__all__ = [
    "EARTH_RADIUS_M",
    "InvalidCoordinateError",
    "distance_meters",
    "haversine_m",
    "is_valid_coordinate",
    "ReverseGeocoder",
]
