# order_tracking/core/geo/distance.py
"""
Геодезия: расстояние по дуге большого круга (Haversine).
"""

from __future__ import annotations

import math

from order_tracking.shared.models.location import Coordinate


EARTH_RADIUS_M = 6_371_000.0  # Средний радиус Земли в метрах


class InvalidCoordinateError(ValueError):
    """Координата вне диапазона или не является конечным числом."""


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Проверяет, что широта и долгота конечны и в допустимом диапазоне."""
    try:
        return (
            math.isfinite(lat)
            and math.isfinite(lon)
            and -90 <= lat <= 90
            and -180 <= lon <= 180
        )
    except TypeError:
        return False


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в метрах) по формуле Haversine.

    Raises:
        InvalidCoordinateError: координата вне диапазона или результат не конечен
    """
    if not (is_valid_coordinate(lat1, lon1) and is_valid_coordinate(lat2, lon2)):
        raise InvalidCoordinateError(
            f"Некорректные координаты: ({lat1}, {lon1}) -> ({lat2}, {lon2})"
        )

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) *
         math.sin(d_lambda / 2) ** 2)
    # Ошибки округления могут вывести a за [0, 1]
    a = min(1.0, max(0.0, a))

    distance = EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    if not math.isfinite(distance):
        raise InvalidCoordinateError("Расстояние не является конечным числом")
    return distance


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Расстояние между координатами в метрах. 0 для совпадающих точек."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
