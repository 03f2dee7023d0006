# tests/config/test_loader.py
"""
Тесты для модуля загрузки конфигурации.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from order_tracking.config.loader import (
    HistorySettings,
    PollingSettings,
    RedisSettings,
    RemoteStoreSettings,
    Settings,
    get_config_path,
    get_project_root,
    load_config_json,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Переменные окружения не должны влиять на тесты."""
    for name in (
        "ORDER_TRACKING_CONFIG",
        "ENVIRONMENT",
        "REMOTE_STORE_URL",
        "REMOTE_STORE_TOKEN",
        "REDIS_HOST",
        "REDIS_PORT",
        "REDIS_PASSWORD",
        "HISTORY_STORAGE_DIR",
        "TRACKING_API_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestPaths:
    """Тесты путей конфигурации."""

    def test_project_root(self) -> None:
        """Корень проекта содержит пакет и конфиг."""
        root = get_project_root()
        assert (root / "order_tracking").is_dir()
        assert (root / "config").is_dir()

    def test_default_config_path(self) -> None:
        """По умолчанию config/config.json."""
        path = get_config_path()
        assert path.name == "config.json"
        assert path.parent.name == "config"

    def test_config_path_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """ORDER_TRACKING_CONFIG переопределяет путь."""
        target = tmp_path / "custom.json"
        monkeypatch.setenv("ORDER_TRACKING_CONFIG", str(target))
        assert get_config_path() == target


class TestLoadConfigJson:
    """Тесты для load_config_json."""

    def test_missing_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Нет файла — пустой словарь."""
        monkeypatch.setenv("ORDER_TRACKING_CONFIG", str(tmp_path / "absent.json"))
        assert load_config_json() == {}

    def test_comments_stripped(self, monkeypatch: pytest.MonkeyPatch, temp_config_file: Path) -> None:
        """Ключи _comment_* отбрасываются."""
        data = json.loads(temp_config_file.read_text())
        data["_comment_test"] = "пояснение"
        temp_config_file.write_text(json.dumps(data))
        monkeypatch.setenv("ORDER_TRACKING_CONFIG", str(temp_config_file))

        loaded = load_config_json()

        assert "_comment_test" not in loaded
        assert loaded["PROJECT_NAME"] == "order_tracking_test"

    def test_repository_config_is_valid(self) -> None:
        """config/config.json репозитория собирается в Settings."""
        settings = Settings.from_config_json(load_config_json())
        assert settings.system.PROJECT_NAME == "order_tracking"


class TestSettings:
    """Тесты для Settings.from_config_json."""

    def test_from_mock_config(self, test_settings: Settings) -> None:
        """Значения из словаря попадают в секции."""
        assert test_settings.system.ENVIRONMENT == "test"
        assert test_settings.deployment.TRACKING_API_PORT == 9100
        assert test_settings.remote_store.is_configured is True
        assert test_settings.redis.REDIS_ENABLED is False
        assert test_settings.throttle.UPDATE_DISTANCE_M == 20.0
        assert test_settings.polling.VEHICLE_POLL_INTERVAL_MS == 300000

    def test_defaults(self) -> None:
        """Пустой словарь -> значения по умолчанию."""
        settings = Settings.from_config_json({})

        assert settings.remote_store.REMOTE_STORE_BACKEND == "rest"
        assert settings.remote_store.is_configured is False
        assert settings.throttle.UPDATE_INTERVAL_MS == 10_000
        assert settings.throttle.REDRAW_DISTANCE_M == 30.0
        assert settings.throttle.INITIAL_DRAW_DELAY_MS == 1_500
        assert settings.throttle.REDRAW_DELAY_MS == 500
        assert settings.polling.VEHICLE_POLL_INTERVAL_MS == 300_000
        assert settings.history.HISTORY_RETENTION_DAYS == 365
        assert settings.render.EVENTS_CHANNEL_PREFIX == "events:order:"

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch, mock_config: dict[str, Any]) -> None:
        """Секреты и адреса берутся из окружения."""
        monkeypatch.setenv("REMOTE_STORE_TOKEN", "from_env")
        monkeypatch.setenv("REDIS_HOST", "redis.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")

        settings = Settings.from_config_json(mock_config)

        assert settings.remote_store.REMOTE_STORE_TOKEN == "from_env"
        assert settings.redis.REDIS_HOST == "redis.internal"
        assert settings.redis.REDIS_PORT == 6380

    def test_empty_env_does_not_override(self, monkeypatch: pytest.MonkeyPatch, mock_config: dict[str, Any]) -> None:
        """Пустая переменная окружения не затирает конфиг."""
        monkeypatch.setenv("REMOTE_STORE_URL", "")
        settings = Settings.from_config_json(mock_config)
        assert settings.remote_store.REMOTE_STORE_URL == "https://kv.example.com"


class TestSections:
    """Тесты отдельных секций."""

    def test_unknown_backend(self) -> None:
        """Неизвестный бэкенд отклоняется."""
        with pytest.raises(ValidationError):
            RemoteStoreSettings(REMOTE_STORE_BACKEND="memcached")

    def test_token_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Пустой токен подставляется из окружения."""
        monkeypatch.setenv("REMOTE_STORE_TOKEN", "env_token")
        assert RemoteStoreSettings(REMOTE_STORE_TOKEN="").REMOTE_STORE_TOKEN == "env_token"

    def test_redis_url(self) -> None:
        """URL Redis с паролем и без."""
        assert RedisSettings().url == "redis://localhost:6379/0"
        assert RedisSettings(REDIS_PASSWORD="pw", REDIS_DB=2).url == "redis://:pw@localhost:6379/2"

    def test_limits(self) -> None:
        """Интервал опроса и срок хранения должны быть положительными."""
        with pytest.raises(ValidationError):
            PollingSettings(VEHICLE_POLL_INTERVAL_MS=0)
        with pytest.raises(ValidationError):
            HistorySettings(HISTORY_RETENTION_DAYS=0)
