# order_tracking/core/tracking/context.py
"""
Контекст отслеживания: создаётся один раз при старте процесса
и передаётся потребителям явно. Владеет клиентами, хранилищами
и реестром сессий.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from redis.exceptions import RedisError

from order_tracking.common.clock import Clock, now_ms
from order_tracking.common.constants import RouteProfile, TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.config.loader import Settings, get_project_root, get_settings
from order_tracking.core.geo.service import ReverseGeocoder
from order_tracking.core.history.store import ItemStorage, LocationHistoryStore
from order_tracking.core.tracking.dispatcher import RenderSurface
from order_tracking.core.tracking.fetcher import FetchResult, KeyValueReader, RemotePositionFetcher
from order_tracking.core.tracking.poller import PositionPoller
from order_tracking.core.tracking.session import TrackingSession
from order_tracking.core.tracking.throttle import ThrottleConfig, ThrottleEngine
from order_tracking.infra.event_bus import EventBus
from order_tracking.infra.event_publisher import RedisEventPublisher
from order_tracking.infra.kv_client import RemoteKeyValueClient
from order_tracking.infra.redis_client import RedisClient
from order_tracking.infra.render_surface import RedisRenderSurface
from order_tracking.infra.storage import JsonFileStorage
from order_tracking.shared.models.location import Coordinate


# Фабрика поверхности отрисовки для заказа
SurfaceFactory = Callable[[int | str], RenderSurface | None]


class TrackingContext:
    """
    Явный контекст вместо глобальных синглтонов.

    Жизненный цикл: init() -> ... -> teardown().
    Поддерживает async with.
    Внешние зависимости можно передать готовыми (тесты, общий пул);
    переданные снаружи клиенты контекст не закрывает.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        kv_reader: KeyValueReader | None = None,
        storage: ItemStorage | None = None,
        geocoder: ReverseGeocoder | None = None,
        event_bus: EventBus | None = None,
        redis: RedisClient | None = None,
        surface_factory: SurfaceFactory | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._settings = settings or get_settings()
        self._kv_reader = kv_reader
        self._storage = storage
        self._geocoder = geocoder
        self._event_bus = event_bus or EventBus()
        self._redis = redis
        self._surface_factory = surface_factory
        self._clock = clock

        self._owned: dict[str, bool] = {
            "kv_reader": kv_reader is None,
            "geocoder": geocoder is None,
            "redis": redis is None,
        }

        self._history: LocationHistoryStore | None = None
        self._fetcher: RemotePositionFetcher | None = None
        self._poller: PositionPoller | None = None
        self._sessions: dict[str, TrackingSession] = {}
        self._detach_events: Callable[[], None] | None = None
        self._initialized = False

    # =========================================================================
    # СВОЙСТВА
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def history(self) -> LocationHistoryStore:
        if self._history is None:
            raise RuntimeError("TrackingContext не инициализирован. Вызовите init() сначала.")
        return self._history

    @property
    def fetcher(self) -> RemotePositionFetcher:
        if self._fetcher is None:
            raise RuntimeError("TrackingContext не инициализирован. Вызовите init() сначала.")
        return self._fetcher

    @property
    def poller(self) -> PositionPoller:
        if self._poller is None:
            raise RuntimeError("TrackingContext не инициализирован. Вызовите init() сначала.")
        return self._poller

    @property
    def redis(self) -> RedisClient | None:
        return self._redis

    @property
    def sessions(self) -> dict[str, TrackingSession]:
        """Активные сессии по order_id (копия реестра)."""
        return dict(self._sessions)

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def init(self) -> None:
        """Создаёт клиенты и хранилища. Повторный вызов ничего не делает."""
        if self._initialized:
            return

        await log_info("Инициализация контекста отслеживания...", type_msg=TypeMsg.INFO)

        await self._init_redis()
        reader = self._init_reader()

        if self._storage is None:
            directory = Path(self._settings.history.HISTORY_STORAGE_DIR)
            if not directory.is_absolute():
                directory = get_project_root() / directory
            self._storage = JsonFileStorage(directory)

        self._history = LocationHistoryStore(
            self._storage,
            retention_days=self._settings.history.HISTORY_RETENTION_DAYS,
            storage_key=self._settings.history.HISTORY_STORAGE_KEY,
            clock=self._clock,
        )

        if self._geocoder is None:
            geo = self._settings.geocoding
            self._geocoder = ReverseGeocoder(
                url=geo.NOMINATIM_URL,
                user_agent=geo.GEOCODING_USER_AGENT,
                language=geo.GEOCODING_LANGUAGE,
                timeout=geo.GEOCODING_TIMEOUT,
                enabled=geo.GEOCODING_ENABLED,
            )

        self._fetcher = RemotePositionFetcher(
            reader,
            key_prefix=self._settings.remote_store.LOCATION_KEY_PREFIX,
            clock=self._clock,
        )
        self._poller = PositionPoller(
            self._fetcher,
            default_interval_ms=self._settings.polling.VEHICLE_POLL_INTERVAL_MS,
        )

        if self._surface_factory is None and self._redis is not None:
            redis_client = self._redis
            prefix = self._settings.render.RENDER_CHANNEL_PREFIX
            self._surface_factory = lambda order_id: RedisRenderSurface(redis_client, order_id, prefix)

        if self._redis is not None:
            publisher = RedisEventPublisher(self._redis, self._settings.render.EVENTS_CHANNEL_PREFIX)
            self._detach_events = publisher.attach(self._event_bus)

        self._initialized = True
        await log_info("Контекст отслеживания инициализирован", type_msg=TypeMsg.INFO)

    async def _init_redis(self) -> None:
        if self._redis is not None or not self._settings.redis.REDIS_ENABLED:
            return

        client = RedisClient(namespace=self._settings.redis.REDIS_NAMESPACE)
        try:
            await client.connect(
                self._settings.redis.url,
                max_connections=self._settings.redis.REDIS_MAX_CONNECTIONS,
            )
        except (RedisError, OSError) as e:
            await log_error(f"Redis недоступен, отрисовка через Redis отключена: {e}")
            await client.disconnect()
            return
        self._redis = client

    def _init_reader(self) -> KeyValueReader | None:
        if self._kv_reader is not None:
            return self._kv_reader

        store = self._settings.remote_store
        if store.REMOTE_STORE_BACKEND == "redis":
            self._kv_reader = self._redis
            self._owned["kv_reader"] = False
        elif store.is_configured:
            self._kv_reader = RemoteKeyValueClient(
                store.REMOTE_STORE_URL,
                store.REMOTE_STORE_TOKEN,
                timeout=store.REMOTE_STORE_TIMEOUT,
            )
        return self._kv_reader

    async def teardown(self) -> None:
        """Останавливает все сессии и закрывает собственные клиенты."""
        for order_key in list(self._sessions):
            await self.stop_session(order_key, reason="shutdown")

        if self._poller is not None:
            self._poller.stop_all()

        if self._detach_events is not None:
            self._detach_events()
            self._detach_events = None

        if self._owned["kv_reader"] and isinstance(self._kv_reader, RemoteKeyValueClient):
            await self._kv_reader.close()
            self._kv_reader = None
        if self._owned["geocoder"] and self._geocoder is not None:
            await self._geocoder.close()
            self._geocoder = None
        if self._owned["redis"] and self._redis is not None:
            await self._redis.disconnect()
            self._redis = None

        self._initialized = False
        await log_info("Контекст отслеживания остановлен", type_msg=TypeMsg.INFO)

    async def __aenter__(self) -> "TrackingContext":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    # =========================================================================
    # СЕССИИ
    # =========================================================================

    async def start_session(
        self,
        order_id: int | str,
        destination: Coordinate | None = None,
        profile: RouteProfile | None = None,
        surface: RenderSurface | None = None,
        track_vehicle: bool = True,
        poll_interval_ms: int | None = None,
    ) -> TrackingSession:
        """
        Запускает сессию отслеживания (существующая сессия заказа заменяется).

        Args:
            order_id: Идентификатор заказа
            destination: Точка назначения
            profile: Профиль маршрута (по умолчанию из конфигурации)
            surface: Поверхность отрисовки (по умолчанию из фабрики)
            track_vehicle: Опрашивать позицию транспорта
            poll_interval_ms: Интервал опроса в мс

        Returns:
            Запущенная сессия
        """
        if not self._initialized:
            raise RuntimeError("TrackingContext не инициализирован. Вызовите init() сначала.")

        key = str(order_id)
        if key in self._sessions:
            await self.stop_session(order_id, reason="replaced")

        if surface is None and self._surface_factory is not None:
            surface = self._surface_factory(order_id)

        session = TrackingSession(
            order_id,
            engine=ThrottleEngine(ThrottleConfig.from_settings(self._settings.throttle)),
            surface=surface,
            poller=self._poller,
            history=self._history,
            geocoder=self._geocoder,
            event_bus=self._event_bus,
            destination=destination,
            profile=profile or RouteProfile(self._settings.render.ROUTE_PROFILE),
            track_vehicle=track_vehicle,
            poll_interval_ms=poll_interval_ms,
            clock=self._clock,
        )
        self._sessions[key] = session
        await session.start()
        return session

    async def stop_session(self, order_id: int | str, reason: str = "stopped") -> bool:
        """
        Останавливает сессию.

        Returns:
            True если сессия существовала
        """
        session = self._sessions.pop(str(order_id), None)
        if session is None:
            return False
        await session.stop(reason=reason)
        return True

    def get_session(self, order_id: int | str) -> TrackingSession | None:
        """Активная сессия заказа или None."""
        return self._sessions.get(str(order_id))

    async def fetch_vehicle(
        self,
        order_id: int | str,
        destination: Coordinate | None = None,
    ) -> FetchResult:
        """Одноразовый запрос позиции транспорта вне опроса."""
        return await self.fetcher.fetch_with_status(order_id, destination)
