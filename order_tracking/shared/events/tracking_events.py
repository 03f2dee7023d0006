# order_tracking/shared/events/tracking_events.py
"""
События сессии отслеживания заказа.
"""

from __future__ import annotations

from order_tracking.common.constants import PositionSource, RouteProfile
from order_tracking.shared.events.base import TrackingEvent
from order_tracking.shared.models.location import (
    Coordinate,
    ObservedPosition,
    VehicleLocationRecord,
)
from order_tracking.shared.models.render import RouteCommand


class SessionStarted(TrackingEvent):
    """Сессия отслеживания запущена."""

    destination: Coordinate | None = None
    profile: RouteProfile = RouteProfile.DRIVING
    track_vehicle: bool = True


class PositionAccepted(TrackingEvent):
    """Наблюдение прошло фильтр обновлений."""

    position: ObservedPosition
    source: PositionSource = PositionSource.DEVICE


class VehicleLocationChanged(TrackingEvent):
    """Получена новая позиция транспорта из удалённого хранилища."""

    location: VehicleLocationRecord


class RouteDrawIssued(TrackingEvent):
    """Отправлена команда отрисовки маршрута."""

    command: RouteCommand


class SessionStopped(TrackingEvent):
    """Сессия отслеживания остановлена."""

    reason: str = "stopped"
