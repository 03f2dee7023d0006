# order_tracking/infra/kv_client.py
"""
HTTP клиент удалённого key/value хранилища (REST-интерфейс к Redis).

Команда отправляется POST-запросом с телом-массивом, например
["GET", "location:order:42"]; ответ: {"result": <значение | null>}.
"""

from __future__ import annotations

import json
from typing import Any

import httpx


class KeyValueError(Exception):
    """Сбой транспорта или протокола удалённого хранилища."""


class RemoteKeyValueClient:
    """
    Асинхронный клиент REST key/value хранилища.

    Аутентификация — bearer токен из конфигурации.
    """

    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            url: Адрес REST эндпоинта
            token: Bearer токен
            timeout: Таймаут запроса в секундах
            client: Готовый HTTP клиент (для тестов и общего пула)
        """
        self._url = url.rstrip("/")
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def is_configured(self) -> bool:
        """Заданы ли адрес и токен."""
        return bool(self._url and self._token)

    async def close(self) -> None:
        """Закрывает HTTP клиент (если он наш)."""
        if self._owns_client:
            await self._client.aclose()

    async def execute(self, *command: Any) -> Any:
        """
        Выполняет одну команду хранилища.

        Returns:
            Значение поля result

        Raises:
            KeyValueError: сетевая ошибка, код не 2xx или некорректный ответ
        """
        if not self.is_configured:
            raise KeyValueError("Удалённое хранилище не настроено")

        try:
            response = await self._client.post(
                self._url,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Content-Type": "application/json",
                },
                content=json.dumps([str(part) for part in command]),
            )
        except httpx.HTTPError as e:
            raise KeyValueError(f"Ошибка сети: {e}") from e

        if not response.is_success:
            raise KeyValueError(f"Хранилище ответило HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise KeyValueError(f"Некорректный JSON в ответе: {e}") from e

        if not isinstance(body, dict):
            raise KeyValueError("Ответ хранилища не является объектом")
        if body.get("error"):
            raise KeyValueError(f"Хранилище вернуло ошибку: {body['error']}")

        return body.get("result")

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        result = await self.execute("GET", key)
        if result is None:
            return None
        return result if isinstance(result, str) else json.dumps(result)
