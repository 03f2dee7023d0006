# order_tracking/infra/event_bus.py
"""
Внутрипроцессная шина событий.
Реализует паттерн Pub/Sub с подпиской по классу события.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from order_tracking.common.logger import log_debug, log_error
from order_tracking.shared.events.base import TrackingEvent


# Тип обработчика событий
EventHandler = Callable[[TrackingEvent], Awaitable[None]]


class EventBus:
    """
    Шина событий сессий отслеживания.

    Реализует:
    - Подписку на класс события (и его наследников)
    - Доставку событий по порядку регистрации обработчиков
    - Изоляцию ошибок обработчиков
    """

    def __init__(self) -> None:
        self._handlers: dict[type[TrackingEvent], list[EventHandler]] = {}

    def subscribe(
        self,
        event_type: type[TrackingEvent],
        handler: EventHandler,
    ) -> Callable[[], None]:
        """
        Подписывает обработчик на события указанного класса.

        Args:
            event_type: Класс события (TrackingEvent — все события)
            handler: Асинхронный обработчик

        Returns:
            Функция отписки
        """
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handlers_for(self, event: TrackingEvent) -> list[EventHandler]:
        """Обработчики, подходящие под класс события и его базовые классы."""
        result: list[EventHandler] = []
        for cls in type(event).__mro__:
            result.extend(self._handlers.get(cls, []))
        return result

    async def publish(self, event: TrackingEvent) -> None:
        """
        Публикует событие всем подписчикам.

        Args:
            event: Событие
        """
        handlers = self.handlers_for(event)
        if not handlers:
            return

        await log_debug(
            f"Событие {type(event).__name__} для заказа {event.order_id} "
            f"({len(handlers)} обработчиков)"
        )
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                await log_error(
                    f"Ошибка обработчика события {type(event).__name__}: {e}",
                    extra={"order_id": str(event.order_id), "event_id": event.event_id},
                )

    def clear(self) -> None:
        """Удаляет все подписки."""
        self._handlers.clear()
