# order_tracking/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RouteProfile(str, Enum):
    """Профиль маршрута для поверхности отрисовки."""
    DRIVING = "driving"
    CYCLING = "cycling"
    WALKING = "walking"


class SessionState(str, Enum):
    """Состояния сессии отслеживания."""
    IDLE = "idle"  # Ещё ни одного принятого обновления
    TRACKING = "tracking"
    STOPPED = "stopped"  # Терминальное


class PositionSource(str, Enum):
    """Источник наблюдения позиции."""
    DEVICE = "device"  # GPS устройства
    REMOTE = "remote"  # Удалённое хранилище (транспорт)


class FetchStatus(str, Enum):
    """Результат запроса позиции из удалённого хранилища."""
    OK = "ok"
    NO_DATA = "no_data"
    MALFORMED = "malformed"
    TRANSPORT_ERROR = "transport_error"
    NOT_CONFIGURED = "not_configured"


# Время
MILLISECONDS_PER_DAY = 24 * 60 * 60 * 1000

# Ключ позиции транспорта в удалённом хранилище
LOCATION_KEY_PREFIX = "location:order:"
