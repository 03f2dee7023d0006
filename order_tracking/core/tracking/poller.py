# order_tracking/core/tracking/poller.py
"""
Периодический опрос позиции транспорта с кооперативной отменой.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Union

from order_tracking.common.constants import TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.core.tracking.fetcher import RemotePositionFetcher
from order_tracking.shared.models.location import Coordinate, VehicleLocationRecord


# Обработчик обновления: синхронный или асинхронный
UpdateCallback = Callable[
    [Union[VehicleLocationRecord, None]],
    Union[Awaitable[Any], Any],
]


class CancellationToken:
    """
    Флаг кооперативной отмены.
    Передаётся от сессии в поллер и диспетчер; проверяется перед каждым действием.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Регистрирует колбэк отмены (вызывается сразу, если токен уже отменён).

        Returns:
            Функция, снимающая колбэк
        """
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def cancel(self) -> None:
        """Отменяет токен. Повторный вызов ничего не делает."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


class PollingHandle:
    """
    Дескриптор запущенного опроса.
    Вызов handle() эквивалентен handle.cancel().
    """

    def __init__(self, order_id: int | str) -> None:
        self.order_id = order_id
        self.token = CancellationToken()
        self._task: asyncio.Task | None = None
        self._last_known: VehicleLocationRecord | None = None

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def is_active(self) -> bool:
        return not self.token.cancelled and self._task is not None and not self._task.done()

    @property
    def last_known(self) -> VehicleLocationRecord | None:
        """Последняя валидная позиция, полученная этим опросом."""
        return self._last_known

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def cancel(self) -> None:
        """
        Останавливает опрос: ожидающий таймер и текущий запрос отменяются,
        обработчик после отмены не вызывается. Идемпотентно.
        """
        self.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __call__(self) -> None:
        self.cancel()


class PositionPoller:
    """
    Опрос удалённого хранилища по заказу.

    - первый запрос выполняется сразу при старте
    - запросы идут последовательно: не больше одного в полёте на заказ
    - после первой валидной позиции пустые ответы повторяют её (sticky)
    """

    def __init__(
        self,
        fetcher: RemotePositionFetcher,
        default_interval_ms: int = 5 * 60 * 1000,
    ) -> None:
        self._fetcher = fetcher
        self._default_interval_ms = default_interval_ms
        self._handles: dict[str, PollingHandle] = {}

    def start(
        self,
        order_id: int | str,
        on_update: UpdateCallback,
        interval_ms: int | None = None,
        destination: Coordinate | None = None,
        token: CancellationToken | None = None,
    ) -> PollingHandle:
        """
        Запускает опрос позиции транспорта.

        Args:
            order_id: Идентификатор заказа
            on_update: Обработчик (None только до первой валидной позиции)
            interval_ms: Интервал опроса в мс
            destination: Точка назначения для расчёта расстояния
            token: Внешний токен отмены (например, токен сессии)

        Returns:
            Дескриптор опроса
        """
        interval = interval_ms if interval_ms is not None else self._default_interval_ms
        if interval <= 0:
            raise ValueError(f"Интервал опроса должен быть положительным: {interval}")

        key = str(order_id)
        previous = self._handles.get(key)
        if previous is not None:
            previous.cancel()

        handle = PollingHandle(order_id)
        unlink = token.add_callback(handle.cancel) if token is not None else None

        task = asyncio.create_task(
            self._run(handle, on_update, interval / 1000, destination),
            name=f"poll-order-{order_id}",
        )
        handle._attach(task)
        task.add_done_callback(lambda _t: self._forget(key, handle, unlink))
        self._handles[key] = handle
        return handle

    def stop(self, order_id: int | str) -> None:
        """Останавливает опрос по заказу (если запущен)."""
        handle = self._handles.pop(str(order_id), None)
        if handle is not None:
            handle.cancel()

    def stop_all(self) -> None:
        """Останавливает все опросы."""
        handles, self._handles = list(self._handles.values()), {}
        for handle in handles:
            handle.cancel()

    def _forget(
        self,
        key: str,
        handle: PollingHandle,
        unlink: Callable[[], None] | None = None,
    ) -> None:
        # Завершённый опрос больше не держит колбэк на внешнем токене
        if unlink is not None:
            unlink()
        if self._handles.get(key) is handle:
            del self._handles[key]

    async def _run(
        self,
        handle: PollingHandle,
        on_update: UpdateCallback,
        interval_s: float,
        destination: Coordinate | None,
    ) -> None:
        order_id = handle.order_id
        await log_info(
            f"Опрос позиции транспорта для заказа {order_id} запущен (интервал {interval_s:.1f} с)",
            type_msg=TypeMsg.DEBUG,
        )
        try:
            while not handle.token.cancelled:
                record = await self._fetcher.fetch(order_id, destination)
                if handle.token.cancelled:
                    break

                if record is not None:
                    handle._last_known = record

                await self._deliver(handle, on_update, handle.last_known)
                if handle.token.cancelled:
                    break

                await asyncio.sleep(interval_s)
        except asyncio.CancelledError:
            pass
        finally:
            await log_info(f"Опрос позиции транспорта для заказа {order_id} остановлен", type_msg=TypeMsg.DEBUG)

    @staticmethod
    async def _deliver(
        handle: PollingHandle,
        on_update: UpdateCallback,
        record: VehicleLocationRecord | None,
    ) -> None:
        try:
            result = on_update(record)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await log_error(
                f"Ошибка обработчика позиции транспорта для заказа {handle.order_id}: {e}",
                exc_info=True,
            )
