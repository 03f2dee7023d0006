# order_tracking/shared/models/render.py
"""
Команды поверхности отрисовки карты.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from order_tracking.common.constants import RouteProfile


class MarkerCommand(BaseModel):
    """Установить/переместить маркер позиции."""

    command: Literal["set_marker"] = "set_marker"
    latitude: float
    longitude: float

    class Config:
        frozen = True


class RouteCommand(BaseModel):
    """Нарисовать маршрут из точки A в точку B."""

    command: Literal["draw_route"] = "draw_route"
    from_lat: float
    from_lng: float
    to_lat: float
    to_lng: float
    profile: RouteProfile = RouteProfile.DRIVING
    is_source_derived: bool = False  # Источник: позиция транспорта, а не GPS устройства
    is_update: bool = False  # Перерисовка уже нарисованного маршрута

    class Config:
        frozen = True
