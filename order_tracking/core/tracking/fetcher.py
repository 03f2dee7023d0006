# order_tracking/core/tracking/fetcher.py
"""
Получение последней опубликованной позиции транспорта по заказу.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError
from redis.exceptions import RedisError

from order_tracking.common.clock import Clock, now_ms
from order_tracking.common.constants import LOCATION_KEY_PREFIX, FetchStatus, TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.core.geo.distance import InvalidCoordinateError, distance_meters
from order_tracking.infra.kv_client import KeyValueError
from order_tracking.shared.models.location import Coordinate, VehicleLocationRecord


class KeyValueReader(Protocol):
    """Источник значений по ключу (REST хранилище или Redis)."""

    async def get(self, key: str) -> str | None: ...


@dataclass(frozen=True)
class FetchResult:
    """Результат одного запроса: запись или причина её отсутствия."""

    status: FetchStatus
    record: VehicleLocationRecord | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK


def _parse_timestamp(value: Any, default: int) -> int:
    """Epoch в мс (число) или ISO-8601 строка -> мс."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"Некорректный timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
        parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    raise ValueError(f"Некорректный timestamp: {value!r}")


class RemotePositionFetcher:
    """
    Клиент без состояния: один запрос — одна позиция.

    «Данных пока нет» — нормальное состояние, а не ошибка.
    Сбои транспорта, коды не 2xx и некорректный JSON логируются
    и возвращаются как отсутствие данных: вызывающий код повторит
    запрос в следующем цикле опроса.
    """

    def __init__(
        self,
        reader: KeyValueReader | None,
        key_prefix: str = LOCATION_KEY_PREFIX,
        clock: Clock = now_ms,
    ) -> None:
        """
        Args:
            reader: Источник значений; None — хранилище не настроено
            key_prefix: Префикс ключа позиции
            clock: Источник времени (мс)
        """
        self._reader = reader
        self._key_prefix = key_prefix
        self._clock = clock

    def key_for(self, order_id: int | str) -> str:
        """Ключ позиции транспорта для заказа."""
        return f"{self._key_prefix}{order_id}"

    async def fetch(
        self,
        order_id: int | str,
        destination: Coordinate | None = None,
    ) -> VehicleLocationRecord | None:
        """
        Последняя позиция транспорта по заказу.

        Args:
            order_id: Идентификатор заказа
            destination: Точка назначения для расчёта расстояния

        Returns:
            Запись о позиции или None
        """
        return (await self.fetch_with_status(order_id, destination)).record

    async def fetch_with_status(
        self,
        order_id: int | str,
        destination: Coordinate | None = None,
    ) -> FetchResult:
        """То же, что fetch(), но с причиной отсутствия данных."""
        if self._reader is None:
            await log_info("Удалённое хранилище позиций не настроено", type_msg=TypeMsg.WARNING)
            return FetchResult(FetchStatus.NOT_CONFIGURED, reason="reader is not configured")

        key = self.key_for(order_id)
        try:
            raw = await self._reader.get(key)
        except (KeyValueError, RedisError, OSError) as e:
            await log_info(
                f"Не удалось получить позицию для заказа {order_id}: {e}",
                type_msg=TypeMsg.WARNING,
            )
            return FetchResult(FetchStatus.TRANSPORT_ERROR, reason=str(e))

        if not raw:
            await log_info(f"Позиции транспорта для заказа {order_id} пока нет", type_msg=TypeMsg.DEBUG)
            return FetchResult(FetchStatus.NO_DATA, reason=f"key {key} not found")

        try:
            record = self._parse(raw, order_id, destination)
        except (ValueError, ValidationError, InvalidCoordinateError) as e:
            await log_error(
                f"Некорректные данные позиции для заказа {order_id}: {e}",
                extra={"key": key, "payload": raw[:500]},
            )
            return FetchResult(FetchStatus.MALFORMED, reason=str(e))

        return FetchResult(FetchStatus.OK, record=record)

    def _parse(
        self,
        raw: str,
        order_id: int | str,
        destination: Coordinate | None,
    ) -> VehicleLocationRecord:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("Позиция должна быть JSON объектом")

        record = VehicleLocationRecord(
            latitude=payload.get("latitude"),
            longitude=payload.get("longitude"),
            accuracy=payload.get("accuracy") or 0.0,
            timestamp=_parse_timestamp(payload.get("timestamp"), self._clock()),
            order_id=payload.get("order_id", order_id),
            user_id=payload.get("user_id"),
            user_type=payload.get("user_type"),
        )

        if destination is None:
            return record

        distance = distance_meters(record.coordinate, destination)
        return record.model_copy(update={
            "distance_m": distance,
            "distance_km": distance / 1000,
        })
