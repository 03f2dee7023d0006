# order_tracking/core/tracking/session.py
"""
Сессия отслеживания одного заказа.
Связывает наблюдения устройства, опрос транспорта, троттлинг,
отрисовку и историю локаций.
"""

from __future__ import annotations

import asyncio

from pydantic import BaseModel, ValidationError

from order_tracking.common.clock import Clock, now_ms
from order_tracking.common.constants import PositionSource, RouteProfile, SessionState, TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.core.geo.service import ReverseGeocoder
from order_tracking.core.history.store import LocationHistoryStore
from order_tracking.core.tracking.dispatcher import RenderCommandDispatcher, RenderSurface
from order_tracking.core.tracking.poller import CancellationToken, PollingHandle, PositionPoller
from order_tracking.core.tracking.throttle import RedrawDecision, ThrottleEngine, UpdateDecision
from order_tracking.infra.event_bus import EventBus
from order_tracking.shared.events import (
    PositionAccepted,
    RouteDrawIssued,
    SessionStarted,
    SessionStopped,
    TrackingEvent,
    VehicleLocationChanged,
)
from order_tracking.shared.models.location import (
    Coordinate,
    ObservedPosition,
    VehicleLocationRecord,
)
from order_tracking.shared.models.render import RouteCommand


class SessionSnapshot(BaseModel):
    """Снимок состояния сессии."""

    order_id: int | str
    state: SessionState
    profile: RouteProfile
    destination: Coordinate | None = None
    device_position: ObservedPosition | None = None
    vehicle_location: VehicleLocationRecord | None = None
    has_drawn_once: bool = False
    route_pending: bool = False  # Ожидает отложенная отрисовка маршрута
    polling: bool = False


class TrackingSession:
    """
    Сессия отслеживания заказа.

    Владеет движком троттлинга, диспетчером, токеном отмены
    и дескриптором опроса. Все решения принимаются в порядке
    поступления наблюдений.
    """

    def __init__(
        self,
        order_id: int | str,
        *,
        engine: ThrottleEngine | None = None,
        surface: RenderSurface | None = None,
        poller: PositionPoller | None = None,
        history: LocationHistoryStore | None = None,
        geocoder: ReverseGeocoder | None = None,
        event_bus: EventBus | None = None,
        destination: Coordinate | None = None,
        profile: RouteProfile = RouteProfile.DRIVING,
        track_vehicle: bool = True,
        poll_interval_ms: int | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.order_id = order_id
        self._engine = engine or ThrottleEngine()
        self._poller = poller
        self._history = history
        self._geocoder = geocoder
        self._event_bus = event_bus
        self._destination = destination
        self._profile = profile
        self._track_vehicle = track_vehicle
        self._poll_interval_ms = poll_interval_ms
        self._clock = clock

        self._token = CancellationToken()
        self._dispatcher = RenderCommandDispatcher(surface, token=self._token, order_id=order_id)
        self._poll_handle: PollingHandle | None = None
        self._persist_tasks: set[asyncio.Task] = set()

        self._device_position: ObservedPosition | None = None
        self._vehicle: VehicleLocationRecord | None = None
        self._started = False
        self._stop_published = False

    # =========================================================================
    # СВОЙСТВА
    # =========================================================================

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def dispatcher(self) -> RenderCommandDispatcher:
        return self._dispatcher

    @property
    def engine(self) -> ThrottleEngine:
        return self._engine

    @property
    def is_alive(self) -> bool:
        return not self._token.cancelled

    @property
    def state(self) -> SessionState:
        return SessionState.STOPPED if self._token.cancelled else self._engine.state

    @property
    def destination(self) -> Coordinate | None:
        return self._destination

    @property
    def device_position(self) -> ObservedPosition | None:
        return self._device_position

    @property
    def vehicle_location(self) -> VehicleLocationRecord | None:
        return self._vehicle

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def start(self) -> None:
        """Запускает сессию и (опционально) опрос позиции транспорта."""
        if self._started or not self.is_alive:
            return
        self._started = True

        await self._publish(SessionStarted(
            order_id=self.order_id,
            destination=self._destination,
            profile=self._profile,
            track_vehicle=self._track_vehicle,
        ))

        if self._track_vehicle and self._poller is not None:
            self._start_polling()

        await log_info(f"Сессия отслеживания заказа {self.order_id} запущена", type_msg=TypeMsg.INFO)

    def _start_polling(self) -> None:
        if self._poll_handle is not None:
            self._poll_handle.cancel()
        self._poll_handle = self._poller.start(
            self.order_id,
            self._on_vehicle_update,
            interval_ms=self._poll_interval_ms,
            destination=self._destination,
            token=self._token,
        )

    def cancel(self) -> None:
        """
        Отменяет сессию: токен, опрос, диспетчер, состояние троттлинга.
        Безопасно вызывать из любого места и повторно.
        """
        if self._token.cancelled:
            return
        self._token.cancel()
        if self._poll_handle is not None:
            self._poll_handle.cancel()
        self._engine.stop()

    async def stop(self, reason: str = "stopped") -> None:
        """Отменяет сессию, дожидается сохранения истории и публикует SessionStopped."""
        self.cancel()

        if self._persist_tasks:
            await asyncio.gather(*list(self._persist_tasks), return_exceptions=True)

        if self._stop_published:
            return
        self._stop_published = True
        await self._publish(SessionStopped(order_id=self.order_id, reason=reason))
        await log_info(f"Сессия отслеживания заказа {self.order_id} остановлена ({reason})", type_msg=TypeMsg.INFO)

    # =========================================================================
    # НАБЛЮДЕНИЯ УСТРОЙСТВА
    # =========================================================================

    async def on_position_observed(
        self,
        latitude: float,
        longitude: float,
        accuracy: float = 0.0,
        timestamp: int | None = None,
    ) -> UpdateDecision:
        """
        Наблюдение GPS устройства.

        Args:
            latitude: Широта
            longitude: Долгота
            accuracy: Точность в метрах
            timestamp: Время наблюдения в мс (по умолчанию текущее)

        Returns:
            Решение фильтра обновлений
        """
        if not self.is_alive:
            return UpdateDecision(False, "stopped")

        observed_at = timestamp if timestamp is not None else self._clock()
        try:
            observation = ObservedPosition(
                latitude=latitude,
                longitude=longitude,
                accuracy=accuracy,
                timestamp=observed_at,
            )
        except ValidationError as e:
            await log_info(
                f"Отброшено некорректное наблюдение для заказа {self.order_id}: {e.errors()[0]['msg']}",
                type_msg=TypeMsg.WARNING,
            )
            return UpdateDecision(False, "invalid_coordinate")

        decision = self._engine.evaluate_update(observation, now_ms=observed_at)
        if not decision.accepted:
            return decision

        self._device_position = observation
        await self._dispatcher.update_marker(observation.coordinate)
        await self._publish(PositionAccepted(
            order_id=self.order_id,
            position=observation,
            source=PositionSource.DEVICE,
        ))
        self._schedule_persist(observation)

        # Пока позиция транспорта неизвестна, маршрут строится от устройства
        if self._vehicle is None:
            await self._maybe_redraw(observation.coordinate, observed_at, source_derived=False)
        return decision

    # =========================================================================
    # ПОЗИЦИЯ ТРАНСПОРТА
    # =========================================================================

    async def _on_vehicle_update(self, record: VehicleLocationRecord | None) -> None:
        if not self.is_alive or record is None:
            return
        # Повтор последней известной позиции (sticky) не перерисовывается
        if self._vehicle is not None and record == self._vehicle:
            return

        now = self._clock()
        decision = self._engine.evaluate_update(record, now_ms=now, gated=False)
        if not decision.accepted:
            return

        self._vehicle = record
        await self._dispatcher.update_marker(record.coordinate)
        await self._publish(VehicleLocationChanged(order_id=self.order_id, location=record))
        await self._maybe_redraw(record.coordinate, now, source_derived=True)

    # =========================================================================
    # МАРШРУТ
    # =========================================================================

    async def _maybe_redraw(
        self,
        current: Coordinate,
        now: int,
        *,
        source_derived: bool,
    ) -> RedrawDecision:
        decision = self._engine.evaluate_redraw(
            current,
            self._destination,
            now,
            source_derived=source_derived,
        )
        if not decision.draw:
            return decision

        if decision.delay_ms > 0:
            self._dispatcher.schedule_route_draw(
                decision.delay_ms,
                decision.origin,
                decision.destination,
                self._profile,
                is_source_derived=decision.is_source_derived,
                is_update=decision.is_update,
            )
        else:
            await self._dispatcher.draw_route(
                decision.origin,
                decision.destination,
                self._profile,
                is_source_derived=decision.is_source_derived,
                is_update=decision.is_update,
            )

        await self._publish(RouteDrawIssued(
            order_id=self.order_id,
            command=RouteCommand(
                from_lat=decision.origin.latitude,
                from_lng=decision.origin.longitude,
                to_lat=decision.destination.latitude,
                to_lng=decision.destination.longitude,
                profile=self._profile,
                is_source_derived=decision.is_source_derived,
                is_update=decision.is_update,
            ),
        ))
        return decision

    async def set_destination(self, destination: Coordinate | None) -> RedrawDecision | None:
        """
        Меняет точку назначения.
        Если текущая позиция известна, маршрут оценивается сразу.
        """
        if not self.is_alive:
            return None
        self._destination = destination
        # Отложенная отрисовка к прежней точке назначения больше не актуальна
        self._dispatcher.cancel_pending_draw()

        if self._poll_handle is not None and self._poll_handle.is_active:
            self._start_polling()

        if destination is None:
            return None
        if self._vehicle is not None:
            return await self._maybe_redraw(self._vehicle.coordinate, self._clock(), source_derived=True)
        if self._device_position is not None:
            return await self._maybe_redraw(self._device_position.coordinate, self._clock(), source_derived=False)
        return None

    # =========================================================================
    # ИСТОРИЯ
    # =========================================================================

    def _schedule_persist(self, observation: ObservedPosition) -> None:
        if self._history is None:
            return
        task = asyncio.create_task(self._persist(observation))
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist(self, observation: ObservedPosition) -> None:
        try:
            if self._geocoder is not None and self._geocoder.enabled:
                address = await self._geocoder.reverse_geocode(observation.latitude, observation.longitude)
                if address is not None:
                    observation = observation.model_copy(update={"address": address})
            await self._history.append(observation)
        except Exception as e:
            await log_error(f"Ошибка сохранения локации заказа {self.order_id}: {e}", exc_info=True)

    # =========================================================================
    # ПРОЧЕЕ
    # =========================================================================

    async def _publish(self, event: TrackingEvent) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event)

    def snapshot(self) -> SessionSnapshot:
        """Текущее состояние сессии."""
        throttle = self._engine.throttle_state
        return SessionSnapshot(
            order_id=self.order_id,
            state=self.state,
            profile=self._profile,
            destination=self._destination,
            device_position=self._device_position,
            vehicle_location=self._vehicle,
            has_drawn_once=throttle.has_drawn_once if throttle is not None else False,
            route_pending=self._dispatcher.has_pending_draw,
            polling=self._poll_handle is not None and self._poll_handle.is_active,
        )
