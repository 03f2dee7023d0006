# order_tracking/core/history/store.py
"""
История локаций устройства с окном хранения (по умолчанию 365 дней).
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from pydantic import ValidationError

from order_tracking.common.clock import Clock, now_ms
from order_tracking.common.constants import MILLISECONDS_PER_DAY, TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.infra.storage import StorageError
from order_tracking.shared.models.location import (
    HistoryStats,
    LocationHistoryRecord,
    ObservedPosition,
)


class ItemStorage(Protocol):
    """Долговременное key/value хранилище строк."""

    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class LocationHistoryStore:
    """
    Журнал наблюдений устройства.

    Инварианты после каждой операции:
    - нет записей старше окна хранения
    - записи отсортированы по timestamp по убыванию
    - записи с одинаковым timestamp не схлопываются

    Хранилище общее для процесса: чтение-вытеснение-запись выполняется
    под блокировкой и не перемежается с другими операциями.
    История — оптимизация, поэтому ошибки хранилища логируются
    и превращаются в пустой результат.
    """

    DEFAULT_STORAGE_KEY = "LOCATION_HISTORY_CACHE"

    def __init__(
        self,
        storage: ItemStorage,
        retention_days: int = 365,
        storage_key: str = DEFAULT_STORAGE_KEY,
        clock: Clock = now_ms,
    ) -> None:
        self._storage = storage
        self._retention_ms = retention_days * MILLISECONDS_PER_DAY
        self._storage_key = storage_key
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def retention_ms(self) -> int:
        return self._retention_ms

    def _expiry_threshold(self, now: int) -> int:
        return now - self.retention_ms

    # =========================================================================
    # ЧТЕНИЕ / ЗАПИСЬ
    # =========================================================================

    async def _read(self) -> LocationHistoryRecord:
        """Читает запись истории; при любой ошибке — пустая история."""
        try:
            raw = await self._storage.get_item(self._storage_key)
            if raw:
                return LocationHistoryRecord.model_validate_json(raw)
        except (StorageError, ValidationError, ValueError) as e:
            await log_error(f"Ошибка чтения истории локаций: {e}")
        return LocationHistoryRecord(locations=[], last_updated=self._clock())

    @staticmethod
    def _serialize(record: LocationHistoryRecord) -> str:
        return record.model_dump_json(by_alias=True, exclude_none=True)

    async def _write(self, record: LocationHistoryRecord) -> bool:
        try:
            await self._storage.set_item(self._storage_key, self._serialize(record))
            return True
        except StorageError as e:
            await log_error(f"Ошибка записи истории локаций: {e}")
            return False

    @staticmethod
    def _sorted(locations: list[ObservedPosition]) -> list[ObservedPosition]:
        return sorted(locations, key=lambda loc: loc.timestamp, reverse=True)

    # =========================================================================
    # ПУБЛИЧНЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def append(self, entry: ObservedPosition) -> bool:
        """
        Добавляет наблюдение, вытесняет устаревшие записи, сортирует и сохраняет.

        Args:
            entry: Наблюдение (timestamp <= 0 заменяется текущим временем)

        Returns:
            True если запись сохранена
        """
        async with self._lock:
            record = await self._read()
            now = self._clock()

            if entry.timestamp <= 0:
                entry = entry.model_copy(update={"timestamp": now})

            threshold = self._expiry_threshold(now)
            locations = [loc for loc in [*record.locations, entry] if loc.timestamp >= threshold]

            updated = LocationHistoryRecord(locations=self._sorted(locations), last_updated=now)
            saved = await self._write(updated)

        if saved:
            await log_info(
                f"Локация сохранена в историю. Всего записей: {len(updated.locations)}",
                type_msg=TypeMsg.DEBUG,
            )
        return saved

    async def query_all(self) -> list[ObservedPosition]:
        """
        Все записи в окне хранения, новые первыми.
        Если найдены устаревшие записи, очищенная история сохраняется.
        """
        async with self._lock:
            record = await self._read()
            threshold = self._expiry_threshold(self._clock())

            valid = [loc for loc in record.locations if loc.timestamp >= threshold]
            if len(valid) != len(record.locations):
                pruned = LocationHistoryRecord(locations=self._sorted(valid), last_updated=record.last_updated)
                await self._write(pruned)
                await log_info(
                    f"Вытеснено устаревших записей истории: {len(record.locations) - len(valid)}",
                    type_msg=TypeMsg.DEBUG,
                )

        return self._sorted(valid)

    async def query_range(self, start: int, end: int) -> list[ObservedPosition]:
        """Записи с timestamp в диапазоне [start, end] включительно."""
        return [loc for loc in await self.query_all() if start <= loc.timestamp <= end]

    async def most_recent(self) -> ObservedPosition | None:
        """Последнее наблюдение или None."""
        locations = await self.query_all()
        return locations[0] if locations else None

    async def clear(self) -> None:
        """Удаляет всю историю."""
        async with self._lock:
            try:
                await self._storage.remove_item(self._storage_key)
                await log_info("История локаций очищена", type_msg=TypeMsg.INFO)
            except StorageError as e:
                await log_error(f"Ошибка очистки истории локаций: {e}")

    async def stats(self) -> HistoryStats:
        """Количество, самая старая/новая запись и примерный размер в байтах."""
        locations = await self.query_all()
        if not locations:
            return HistoryStats()

        timestamps = [loc.timestamp for loc in locations]
        async with self._lock:
            record = await self._read()
        size = len(self._serialize(record).encode("utf-8"))

        return HistoryStats(
            count=len(locations),
            oldest_timestamp=min(timestamps),
            newest_timestamp=max(timestamps),
            approximate_byte_size=size,
        )
