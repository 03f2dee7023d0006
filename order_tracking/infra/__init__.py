"""
Инфраструктурный слой.
Работа с внешними сервисами: REST key/value хранилище, Redis, файлы.
"""

from order_tracking.infra.event_bus import EventBus
from order_tracking.infra.kv_client import KeyValueError, RemoteKeyValueClient
from order_tracking.infra.redis_client import RedisClient
from order_tracking.infra.render_surface import RedisRenderSurface
from order_tracking.infra.storage import JsonFileStorage, StorageError

__all__ = [
    "EventBus",
    "KeyValueError",
    "RemoteKeyValueClient",
    "RedisClient",
    "RedisRenderSurface",
    "JsonFileStorage",
    "StorageError",
]
