# order_tracking/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Путь к файлу конфигурации (переопределяется ORDER_TRACKING_CONFIG)."""
    override = os.getenv("ORDER_TRACKING_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """
    Загружает config.json и возвращает словарь.
    Без файла работаем на значениях по умолчанию.
    """
    config_path = get_config_path()
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    # Ключи _comment_* это пояснения, а не настройки
    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "order_tracking"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Настройки развертывания API."""
    TRACKING_API_HOST: str = "0.0.0.0"
    TRACKING_API_PORT: int = 8092


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class RemoteStoreSettings(BaseModel):
    """Удалённое key/value хранилище с позициями транспорта."""
    REMOTE_STORE_BACKEND: str = "rest"  # rest | redis
    REMOTE_STORE_URL: str = ""
    REMOTE_STORE_TOKEN: str = ""
    REMOTE_STORE_TIMEOUT: float = 10.0
    LOCATION_KEY_PREFIX: str = "location:order:"

    @field_validator("REMOTE_STORE_TOKEN", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает токен из переменных окружения, если не задан."""
        if not v:
            return os.getenv("REMOTE_STORE_TOKEN", "")
        return v

    @field_validator("REMOTE_STORE_BACKEND")
    @classmethod
    def check_backend(cls, v: str) -> str:
        """Проверяет тип бэкенда."""
        if v not in ("rest", "redis"):
            raise ValueError(f"Неизвестный бэкенд хранилища: {v}")
        return v

    @property
    def is_configured(self) -> bool:
        """Заданы ли адрес и токен REST хранилища."""
        return bool(self.REMOTE_STORE_URL and self.REMOTE_STORE_TOKEN)


class RedisSettings(BaseModel):
    """Настройки Redis (канал команд отрисовки, прямой доступ к позициям)."""
    REDIS_ENABLED: bool = True
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = ""
    REDIS_MAX_CONNECTIONS: int = 20

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class HistorySettings(BaseModel):
    """История локаций устройства."""
    HISTORY_STORAGE_DIR: str = "data"
    HISTORY_STORAGE_KEY: str = "LOCATION_HISTORY_CACHE"
    HISTORY_RETENTION_DAYS: int = Field(default=365, ge=1)


class ThrottleSettings(BaseModel):
    """Пороги троттлинга обновлений и перерисовки маршрута."""
    UPDATE_INTERVAL_MS: int = 10_000
    UPDATE_DISTANCE_M: float = 20.0
    REDRAW_INTERVAL_MS: int = 10_000
    REDRAW_DISTANCE_M: float = 30.0
    INITIAL_DRAW_DELAY_MS: int = 1_500
    REDRAW_DELAY_MS: int = 500


class PollingSettings(BaseModel):
    """Опрос позиции транспорта."""
    VEHICLE_POLL_INTERVAL_MS: int = Field(default=5 * 60 * 1000, gt=0)


class GeocodingSettings(BaseModel):
    """Обратное геокодирование (OpenStreetMap Nominatim)."""
    GEOCODING_ENABLED: bool = True
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/reverse"
    GEOCODING_USER_AGENT: str = "OrderTracking/1.0"
    GEOCODING_TIMEOUT: float = 10.0
    GEOCODING_LANGUAGE: str = "en"


class RenderSettings(BaseModel):
    """Команды поверхности отрисовки."""
    ROUTE_PROFILE: str = "driving"
    RENDER_CHANNEL_PREFIX: str = "render:order:"
    EVENTS_CHANNEL_PREFIX: str = "events:order:"


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    remote_store: RemoteStoreSettings = Field(default_factory=RemoteStoreSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    throttle: ThrottleSettings = Field(default_factory=ThrottleSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls, config_data: dict[str, Any] | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и адреса переопределяются из переменных окружения.
        """
        data = load_config_json() if config_data is None else config_data

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "order_tracking"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", True),
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                ENVIRONMENT=os.getenv("ENVIRONMENT") or data.get("ENVIRONMENT", "development"),
            ),
            deployment=DeploymentSettings(
                TRACKING_API_HOST=data.get("TRACKING_API_HOST", "0.0.0.0"),
                TRACKING_API_PORT=int(os.getenv("TRACKING_API_PORT", data.get("TRACKING_API_PORT", 8092))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            remote_store=RemoteStoreSettings(
                REMOTE_STORE_BACKEND=data.get("REMOTE_STORE_BACKEND", "rest"),
                REMOTE_STORE_URL=os.getenv("REMOTE_STORE_URL") or data.get("REMOTE_STORE_URL", ""),
                REMOTE_STORE_TOKEN=os.getenv("REMOTE_STORE_TOKEN") or data.get("REMOTE_STORE_TOKEN", ""),
                REMOTE_STORE_TIMEOUT=data.get("REMOTE_STORE_TIMEOUT", 10.0),
                LOCATION_KEY_PREFIX=data.get("LOCATION_KEY_PREFIX", "location:order:"),
            ),
            redis=RedisSettings(
                REDIS_ENABLED=data.get("REDIS_ENABLED", True),
                REDIS_HOST=os.getenv("REDIS_HOST") or data.get("REDIS_HOST", "localhost"),
                REDIS_PORT=int(os.getenv("REDIS_PORT", data.get("REDIS_PORT", 6379))),
                REDIS_DB=data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD") or data.get("REDIS_PASSWORD", ""),
                REDIS_NAMESPACE=data.get("REDIS_NAMESPACE", ""),
                REDIS_MAX_CONNECTIONS=data.get("REDIS_MAX_CONNECTIONS", 20),
            ),
            history=HistorySettings(
                HISTORY_STORAGE_DIR=os.getenv("HISTORY_STORAGE_DIR") or data.get("HISTORY_STORAGE_DIR", "data"),
                HISTORY_STORAGE_KEY=data.get("HISTORY_STORAGE_KEY", "LOCATION_HISTORY_CACHE"),
                HISTORY_RETENTION_DAYS=data.get("HISTORY_RETENTION_DAYS", 365),
            ),
            throttle=ThrottleSettings(
                UPDATE_INTERVAL_MS=data.get("UPDATE_INTERVAL_MS", 10_000),
                UPDATE_DISTANCE_M=data.get("UPDATE_DISTANCE_M", 20.0),
                REDRAW_INTERVAL_MS=data.get("REDRAW_INTERVAL_MS", 10_000),
                REDRAW_DISTANCE_M=data.get("REDRAW_DISTANCE_M", 30.0),
                INITIAL_DRAW_DELAY_MS=data.get("INITIAL_DRAW_DELAY_MS", 1_500),
                REDRAW_DELAY_MS=data.get("REDRAW_DELAY_MS", 500),
            ),
            polling=PollingSettings(
                VEHICLE_POLL_INTERVAL_MS=data.get("VEHICLE_POLL_INTERVAL_MS", 5 * 60 * 1000),
            ),
            geocoding=GeocodingSettings(
                GEOCODING_ENABLED=data.get("GEOCODING_ENABLED", True),
                NOMINATIM_URL=data.get("NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse"),
                GEOCODING_USER_AGENT=data.get("GEOCODING_USER_AGENT", "OrderTracking/1.0"),
                GEOCODING_TIMEOUT=data.get("GEOCODING_TIMEOUT", 10.0),
                GEOCODING_LANGUAGE=data.get("GEOCODING_LANGUAGE", "en"),
            ),
            render=RenderSettings(
                ROUTE_PROFILE=data.get("ROUTE_PROFILE", "driving"),
                RENDER_CHANNEL_PREFIX=data.get("RENDER_CHANNEL_PREFIX", "render:order:"),
                EVENTS_CHANNEL_PREFIX=data.get("EVENTS_CHANNEL_PREFIX", "events:order:"),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт для удобного импорта
settings = get_settings()
