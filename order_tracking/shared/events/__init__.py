"""
События отслеживания (типизированные, подписка по классу).
"""

from order_tracking.shared.events.base import EventMetadata, EventT, TrackingEvent
from order_tracking.shared.events.tracking_events import (
    PositionAccepted,
    RouteDrawIssued,
    SessionStarted,
    SessionStopped,
    VehicleLocationChanged,
)

__all__ = [
    "EventMetadata",
    "EventT",
    "TrackingEvent",
    "PositionAccepted",
    "RouteDrawIssued",
    "SessionStarted",
    "SessionStopped",
    "VehicleLocationChanged",
]
