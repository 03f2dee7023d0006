# order_tracking/core/tracking/dispatcher.py
"""
Отправка команд на поверхность отрисовки карты.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from order_tracking.common.constants import RouteProfile, TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.core.tracking.poller import CancellationToken
from order_tracking.shared.models.location import Coordinate
from order_tracking.shared.models.render import MarkerCommand, RouteCommand


class RenderSurface(Protocol):
    """Поверхность отрисовки: маркер и маршрут."""

    async def set_marker(self, command: MarkerCommand) -> None: ...

    async def draw_route(self, command: RouteCommand) -> None: ...


class RenderCommandDispatcher:
    """
    Fire-and-forget диспетчер команд.

    Жизненный цикл поверхности независим от сессии и обычно короче:
    ошибки поверхности логируются и не пробрасываются.
    Отложенная отрисовка не больше одной: новая команда маршрута
    (немедленная или отложенная) отменяет ожидающую.
    После teardown() (или отмены токена сессии) любые команды игнорируются,
    отложенная отрисовка отменяется.
    """

    def __init__(
        self,
        surface: RenderSurface | None,
        token: CancellationToken | None = None,
        order_id: int | str | None = None,
    ) -> None:
        self._surface = surface
        self._token = token
        self._order_id = order_id
        self._alive = True
        self._pending_draw: asyncio.Task | None = None

        if token is not None:
            token.add_callback(self.teardown)

    @property
    def is_alive(self) -> bool:
        """Флаг жизни: проверяется непосредственно перед каждой командой."""
        if self._token is not None and self._token.cancelled:
            return False
        return self._alive and self._surface is not None

    @property
    def has_pending_draw(self) -> bool:
        return self._pending_draw is not None and not self._pending_draw.done()

    def cancel_pending_draw(self) -> None:
        """Отменяет ожидающую отложенную отрисовку (если есть)."""
        task, self._pending_draw = self._pending_draw, None
        if task is not None and not task.done():
            task.cancel()

    def teardown(self) -> None:
        """Отключает диспетчер и отменяет отложенную отрисовку. Идемпотентно."""
        self._alive = False
        self.cancel_pending_draw()

    # =========================================================================
    # КОМАНДЫ
    # =========================================================================

    async def update_marker(self, coordinate: Coordinate) -> bool:
        """
        Устанавливает маркер позиции.

        Returns:
            True если команда отправлена
        """
        if not self.is_alive:
            return False

        command = MarkerCommand(latitude=coordinate.latitude, longitude=coordinate.longitude)
        try:
            await self._surface.set_marker(command)
            return True
        except Exception as e:
            await log_error(
                f"Поверхность отклонила маркер (заказ {self._order_id}): {e}",
                extra={"command": command.model_dump()},
            )
            return False

    async def draw_route(
        self,
        from_: Coordinate,
        to: Coordinate,
        profile: RouteProfile = RouteProfile.DRIVING,
        is_source_derived: bool = False,
        is_update: bool = False,
    ) -> bool:
        """
        Рисует маршрут from_ -> to. Ожидающая отложенная отрисовка отменяется.

        Returns:
            True если команда отправлена
        """
        self.cancel_pending_draw()
        return await self._send_route(from_, to, profile, is_source_derived, is_update)

    async def _send_route(
        self,
        from_: Coordinate,
        to: Coordinate,
        profile: RouteProfile,
        is_source_derived: bool,
        is_update: bool,
    ) -> bool:
        if not self.is_alive:
            return False

        command = RouteCommand(
            from_lat=from_.latitude,
            from_lng=from_.longitude,
            to_lat=to.latitude,
            to_lng=to.longitude,
            profile=profile,
            is_source_derived=is_source_derived,
            is_update=is_update,
        )
        try:
            await self._surface.draw_route(command)
            return True
        except Exception as e:
            await log_error(
                f"Поверхность отклонила маршрут (заказ {self._order_id}): {e}",
                extra={"command": command.model_dump(mode="json")},
            )
            return False

    def schedule_route_draw(
        self,
        delay_ms: int,
        from_: Coordinate,
        to: Coordinate,
        profile: RouteProfile = RouteProfile.DRIVING,
        is_source_derived: bool = False,
        is_update: bool = False,
    ) -> asyncio.Task | None:
        """
        Отрисовка маршрута с задержкой.
        Заменяет ожидающую отложенную отрисовку.
        Жизнь диспетчера проверяется после ожидания, перед отправкой.

        Returns:
            Задача отрисовки или None, если диспетчер уже отключён
        """
        self.cancel_pending_draw()
        if not self.is_alive:
            return None

        async def _delayed() -> None:
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
            sent = await self._send_route(from_, to, profile, is_source_derived, is_update)
            if not sent:
                await log_info(
                    f"Отложенная отрисовка маршрута для заказа {self._order_id} пропущена",
                    type_msg=TypeMsg.DEBUG,
                )

        task = asyncio.create_task(_delayed())
        self._pending_draw = task
        task.add_done_callback(self._clear_pending_draw)
        return task

    def _clear_pending_draw(self, task: asyncio.Task) -> None:
        if self._pending_draw is task:
            self._pending_draw = None
