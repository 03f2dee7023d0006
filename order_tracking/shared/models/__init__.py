"""
Модели данных отслеживания.
"""

from order_tracking.shared.models.location import (
    AddressSnapshot,
    Coordinate,
    HistoryStats,
    LocationHistoryRecord,
    ObservedPosition,
    VehicleLocationRecord,
)
from order_tracking.shared.models.render import MarkerCommand, RouteCommand

__all__ = [
    "AddressSnapshot",
    "Coordinate",
    "HistoryStats",
    "LocationHistoryRecord",
    "ObservedPosition",
    "VehicleLocationRecord",
    "MarkerCommand",
    "RouteCommand",
]
