# order_tracking/core/tracking/throttle.py
"""
Троттлинг обновлений позиции и перерисовки маршрута.

Два независимых фильтра над одним потоком наблюдений:
- Gate 1 (принятие обновления): время И расстояние
- Gate 2 (перерисовка маршрута): время ИЛИ расстояние

Стоящий на месте участник не будет принят повторно, сколько бы
времени ни прошло, пока не сместится на UPDATE_DISTANCE_M.
Это известный компромисс ради подавления дрожания GPS.

Решения синхронные и не выполняют I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from order_tracking.common.constants import SessionState
from order_tracking.common.logger import get_logger
from order_tracking.config.loader import ThrottleSettings
from order_tracking.core.geo.distance import (
    InvalidCoordinateError,
    distance_meters,
    is_valid_coordinate,
)
from order_tracking.shared.models.location import Coordinate, ObservedPosition


logger = get_logger(__name__)


@dataclass(frozen=True)
class ThrottleConfig:
    """Пороги фильтров и задержки отрисовки."""

    update_interval_ms: int = 10_000
    update_distance_m: float = 20.0
    redraw_interval_ms: int = 10_000
    redraw_distance_m: float = 30.0
    initial_draw_delay_ms: int = 1_500
    redraw_delay_ms: int = 500

    @classmethod
    def from_settings(cls, throttle: ThrottleSettings) -> "ThrottleConfig":
        return cls(
            update_interval_ms=throttle.UPDATE_INTERVAL_MS,
            update_distance_m=throttle.UPDATE_DISTANCE_M,
            redraw_interval_ms=throttle.REDRAW_INTERVAL_MS,
            redraw_distance_m=throttle.REDRAW_DISTANCE_M,
            initial_draw_delay_ms=throttle.INITIAL_DRAW_DELAY_MS,
            redraw_delay_ms=throttle.REDRAW_DELAY_MS,
        )


@dataclass(frozen=True)
class Anchor:
    """Точка отсчёта фильтра: координата и момент решения."""

    coordinate: Coordinate
    timestamp: int


@dataclass
class ThrottleState:
    """Состояние фильтров одной сессии."""

    last_accepted: Anchor | None = None
    last_draw: Anchor | None = None
    has_drawn_once: bool = False


@dataclass(frozen=True)
class UpdateDecision:
    accepted: bool
    reason: str
    position: ObservedPosition | None = None


@dataclass(frozen=True)
class RedrawDecision:
    draw: bool
    reason: str
    is_update: bool = False
    is_source_derived: bool = False
    delay_ms: int = 0
    origin: Coordinate | None = None
    destination: Coordinate | None = None


class ThrottleEngine:
    """
    Машина состояний IDLE -> TRACKING -> STOPPED.

    Поздние наблюдения сравниваются только с сохранённым состоянием,
    между собой наблюдения не упорядочиваются.
    """

    def __init__(self, config: ThrottleConfig | None = None) -> None:
        self._config = config or ThrottleConfig()
        self._state = SessionState.IDLE
        self._throttle: ThrottleState | None = ThrottleState()

    @property
    def config(self) -> ThrottleConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def throttle_state(self) -> ThrottleState | None:
        """Состояние фильтров; None после stop()."""
        return self._throttle

    def stop(self) -> None:
        """Переводит движок в STOPPED и освобождает состояние. Идемпотентно."""
        self._state = SessionState.STOPPED
        self._throttle = None

    # =========================================================================
    # GATE 1: ПРИНЯТИЕ ОБНОВЛЕНИЯ
    # =========================================================================

    def evaluate_update(
        self,
        observation: ObservedPosition,
        now_ms: int | None = None,
        *,
        gated: bool = True,
    ) -> UpdateDecision:
        """
        Решает, обновляет ли наблюдение видимое состояние.

        Args:
            observation: Наблюдение
            now_ms: Момент решения (по умолчанию timestamp наблюдения)
            gated: False — наблюдение от удалённого источника, принимается без фильтра

        Returns:
            Решение; при принятии last_accepted обновлён
        """
        if self._state == SessionState.STOPPED or self._throttle is None:
            return UpdateDecision(False, "stopped")

        if not is_valid_coordinate(observation.latitude, observation.longitude):
            logger.warning(
                "Отброшено наблюдение с некорректными координатами: (%s, %s)",
                observation.latitude, observation.longitude,
            )
            return UpdateDecision(False, "invalid_coordinate")

        now = observation.timestamp if now_ms is None else now_ms
        coordinate = observation.coordinate
        last = self._throttle.last_accepted

        if self._state == SessionState.IDLE or last is None:
            reason = "first"
        elif not gated:
            reason = "ungated"
        else:
            try:
                moved = distance_meters(coordinate, last.coordinate)
            except InvalidCoordinateError as e:
                logger.warning("Отброшено наблюдение: %s", e)
                return UpdateDecision(False, "invalid_coordinate")

            elapsed = now - last.timestamp
            if elapsed < self._config.update_interval_ms:
                return UpdateDecision(False, "too_soon")
            if moved < self._config.update_distance_m:
                return UpdateDecision(False, "too_close")
            reason = "moved"

        self._throttle.last_accepted = Anchor(coordinate, now)
        self._state = SessionState.TRACKING
        return UpdateDecision(True, reason, observation)

    # =========================================================================
    # GATE 2: ПЕРЕРИСОВКА МАРШРУТА
    # =========================================================================

    def evaluate_redraw(
        self,
        current: Coordinate | None,
        destination: Coordinate | None,
        now_ms: int,
        *,
        source_derived: bool = False,
    ) -> RedrawDecision:
        """
        Решает, нужно ли (пере)рисовать маршрут current -> destination.

        Args:
            current: Текущая позиция (устройства или транспорта)
            destination: Точка назначения
            now_ms: Момент решения
            source_derived: Позиция получена от удалённого источника (рисуется без задержки)

        Returns:
            Решение; при отрисовке last_draw обновлён
        """
        if self._state == SessionState.STOPPED or self._throttle is None:
            return RedrawDecision(False, "stopped")
        if current is None or destination is None:
            return RedrawDecision(False, "no_endpoint")

        try:
            route_length = distance_meters(current, destination)
        except InvalidCoordinateError as e:
            logger.warning("Отрисовка маршрута отклонена: %s", e)
            return RedrawDecision(False, "invalid_coordinate")

        state = self._throttle
        if not state.has_drawn_once or state.last_draw is None:
            reason = "first_draw"
            is_update = False
        else:
            try:
                moved = distance_meters(current, state.last_draw.coordinate)
            except InvalidCoordinateError as e:
                logger.warning("Отрисовка маршрута отклонена: %s", e)
                return RedrawDecision(False, "invalid_coordinate")

            elapsed = now_ms - state.last_draw.timestamp
            if elapsed >= self._config.redraw_interval_ms:
                reason = "interval"
            elif moved >= self._config.redraw_distance_m:
                reason = "moved"
            else:
                return RedrawDecision(False, "throttled")
            is_update = True

        if source_derived:
            delay = 0
        elif is_update:
            delay = self._config.redraw_delay_ms
        else:
            delay = self._config.initial_draw_delay_ms

        state.last_draw = Anchor(current, now_ms)
        state.has_drawn_once = True

        logger.debug(
            "Отрисовка маршрута: %s, длина %.0f м, задержка %d мс",
            reason, route_length, delay,
        )
        return RedrawDecision(
            draw=True,
            reason=reason,
            is_update=is_update,
            is_source_derived=source_derived,
            delay_ms=delay,
            origin=current,
            destination=destination,
        )
