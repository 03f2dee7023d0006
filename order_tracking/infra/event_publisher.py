# order_tracking/infra/event_publisher.py
"""
Трансляция событий сессий в Redis Pub/Sub.
Внешние подписчики слушают канал events:order:{order_id}.
"""

from __future__ import annotations

from typing import Callable

from order_tracking.infra.event_bus import EventBus
from order_tracking.infra.redis_client import RedisClient
from order_tracking.shared.events.base import TrackingEvent


class RedisEventPublisher:
    """Подписчик шины, публикующий каждое событие в канал заказа."""

    def __init__(self, redis: RedisClient, channel_prefix: str = "events:order:") -> None:
        self._redis = redis
        self._channel_prefix = channel_prefix

    def channel_for(self, order_id: int | str) -> str:
        return f"{self._channel_prefix}{order_id}"

    async def __call__(self, event: TrackingEvent) -> None:
        await self._redis.publish(self.channel_for(event.order_id), event.to_json())

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """
        Подписывается на все события шины.

        Returns:
            Функция отписки
        """
        return bus.subscribe(TrackingEvent, self)
