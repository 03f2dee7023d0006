# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from order_tracking.config.loader import Settings
from order_tracking.infra.storage import JsonFileStorage
from order_tracking.shared.models.render import MarkerCommand, RouteCommand


# =============================================================================
# ФЕЙКИ
# =============================================================================

class FakeClock:
    """Управляемые часы (мс)."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeReader:
    """
    Key/value источник позиций.

    values — постоянные значения по ключу;
    queue — очередь ответов (по одному на вызов get), приоритетнее values.
    """

    def __init__(
        self,
        values: dict[str, str] | None = None,
        queue: list[Any] | None = None,
    ) -> None:
        self.values = values or {}
        self.queue = list(queue or [])
        self.calls: list[str] = []

    async def get(self, key: str) -> str | None:
        self.calls.append(key)
        if self.queue:
            item = self.queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return self.values.get(key)


class RecordingSurface:
    """Поверхность отрисовки, запоминающая команды."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.markers: list[MarkerCommand] = []
        self.routes: list[RouteCommand] = []

    async def set_marker(self, command: MarkerCommand) -> None:
        if self.fail:
            raise RuntimeError("surface is gone")
        self.markers.append(command)

    async def draw_route(self, command: RouteCommand) -> None:
        if self.fail:
            raise RuntimeError("surface is gone")
        self.routes.append(command)


class MemoryStorage:
    """Key/value хранилище в памяти."""

    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    async def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    async def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


def position_payload(
    latitude: float,
    longitude: float,
    timestamp: Any = 1_700_000_000_000,
    order_id: Any = 42,
    **extra: Any,
) -> str:
    """JSON позиции транспорта в формате удалённого хранилища."""
    data = {
        "latitude": latitude,
        "longitude": longitude,
        "timestamp": timestamp,
        "order_id": order_id,
        "user_id": 7,
        "user_type": "driver",
        **extra,
    }
    return json.dumps(data)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config(tmp_path: Path) -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "order_tracking_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "LOG_TO_FILE": False,
        "LOG_FORMAT": "colored",
        "TRACKING_API_PORT": 9100,
        "REMOTE_STORE_BACKEND": "rest",
        "REMOTE_STORE_URL": "https://kv.example.com",
        "REMOTE_STORE_TOKEN": "test_token",
        "REDIS_ENABLED": False,
        "HISTORY_STORAGE_DIR": str(tmp_path / "history"),
        "HISTORY_RETENTION_DAYS": 365,
        "UPDATE_INTERVAL_MS": 10000,
        "UPDATE_DISTANCE_M": 20.0,
        "REDRAW_INTERVAL_MS": 10000,
        "REDRAW_DISTANCE_M": 30.0,
        "INITIAL_DRAW_DELAY_MS": 1500,
        "REDRAW_DELAY_MS": 500,
        "VEHICLE_POLL_INTERVAL_MS": 300000,
        "GEOCODING_ENABLED": False,
        "ROUTE_PROFILE": "driving",
    }


@pytest.fixture
def test_settings(mock_config: dict[str, Any]) -> Settings:
    """Настройки из мок конфигурации."""
    return Settings.from_config_json(mock_config)


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (ФЕЙКИ)
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    """Управляемые часы."""
    return FakeClock()


@pytest.fixture
def fake_reader() -> FakeReader:
    """Пустой источник позиций."""
    return FakeReader()


@pytest.fixture
def surface() -> RecordingSurface:
    """Поверхность отрисовки."""
    return RecordingSurface()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    """Хранилище в памяти."""
    return MemoryStorage()


@pytest.fixture
def file_storage(tmp_path: Path) -> JsonFileStorage:
    """Файловое хранилище во временной директории."""
    return JsonFileStorage(tmp_path / "storage")
