# order_tracking/infra/redis_client.py
"""
Клиент Redis: прямое чтение позиций транспорта и Pub/Sub
для команд поверхности отрисовки.
"""

from __future__ import annotations

import redis.asyncio as redis
from pydantic import BaseModel

from order_tracking.common.logger import log_error, log_info
from order_tracking.common.constants import TypeMsg


class RedisClient:
    """
    Асинхронный клиент Redis.

    Экземпляр создаётся и закрывается владельцем (TrackingContext),
    глобального состояния нет.
    Поддерживает:
    - Чтение ключей с опциональным namespace
    - Публикацию Pydantic моделей в каналы
    """

    def __init__(self, namespace: str = "") -> None:
        self._client: redis.Redis | None = None
        self._namespace = namespace

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу (если задан)."""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def connect(self, url: str, max_connections: int = 20) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis
            max_connections: Максимальное количество соединений
        """
        if self._client is not None:
            return

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self.client.get(self._make_key(key))

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    async def publish(self, channel: str, message: str) -> int:
        """
        Публикует сообщение в канал.

        Returns:
            Количество получателей
        """
        return await self.client.publish(self._make_key(channel), message)

    async def publish_model(self, channel: str, model: BaseModel) -> int:
        """Сериализует и публикует Pydantic модель."""
        return await self.publish(channel, model.model_dump_json())

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False
