# order_tracking/infra/render_surface.py
"""
Поверхность отрисовки поверх Redis Pub/Sub.
Команды публикуются в канал заказа; клиент карты подписан на канал
и выполняет их у себя.
"""

from __future__ import annotations

from order_tracking.infra.redis_client import RedisClient
from order_tracking.shared.models.render import MarkerCommand, RouteCommand


class RedisRenderSurface:
    """Публикует команды маркера и маршрута в канал render:order:{order_id}."""

    def __init__(
        self,
        redis: RedisClient,
        order_id: int | str,
        channel_prefix: str = "render:order:",
    ) -> None:
        self._redis = redis
        self._channel = f"{channel_prefix}{order_id}"

    @property
    def channel(self) -> str:
        return self._channel

    async def set_marker(self, command: MarkerCommand) -> None:
        await self._redis.publish_model(self._channel, command)

    async def draw_route(self, command: RouteCommand) -> None:
        await self._redis.publish_model(self._channel, command)
