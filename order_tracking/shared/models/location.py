# order_tracking/shared/models/location.py
"""
Модели геолокации: координата, наблюдение, запись о транспорте, история.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class Coordinate(BaseModel):
    """Координата. Значения вне диапазона отклоняются, а не обрезаются."""

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)

    class Config:
        frozen = True


class AddressSnapshot(BaseModel):
    """Адрес по координатам (результат обратного геокодирования)."""

    formatted_address: str | None = None
    address: str | None = None  # Короткий адрес: дом, улица, район, город...
    house_number: str | None = None
    road: str | None = None
    neighborhood: str | None = None
    suburb: str | None = None
    city: str | None = None
    state: str | None = None
    postcode: str | None = None
    country: str | None = None
    country_code: str | None = None

    class Config:
        frozen = True


class ObservedPosition(BaseModel):
    """
    Наблюдение позиции (GPS устройства или удалённое хранилище).
    Неизменяемо: новое наблюдение заменяет старое, а не модифицирует.
    """

    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    accuracy: float = Field(default=0.0, ge=0, allow_inf_nan=False)  # метры
    timestamp: int = Field(..., ge=0)  # epoch, мс
    address: AddressSnapshot | None = None

    class Config:
        frozen = True

    @property
    def coordinate(self) -> Coordinate:
        """Координата наблюдения."""
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class VehicleLocationRecord(ObservedPosition):
    """
    Позиция транспорта по заказу из удалённого хранилища.
    Не сохраняется локально.
    """

    order_id: int | str
    user_id: int | str | None = None
    user_type: str | None = None
    distance_m: float | None = None  # До точки назначения
    distance_km: float | None = None


class LocationHistoryRecord(BaseModel):
    """Запись истории в хранилище: {"locations": [...], "lastUpdated": ms}."""

    locations: list[ObservedPosition] = Field(default_factory=list)
    last_updated: int = Field(default=0, alias="lastUpdated")

    class Config:
        populate_by_name = True


class HistoryStats(BaseModel):
    """Статистика истории локаций."""

    count: int = 0
    oldest_timestamp: int | None = None
    newest_timestamp: int | None = None
    approximate_byte_size: int = 0
