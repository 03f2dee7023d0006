# order_tracking/shared/events/base.py
"""
Базовые классы событий отслеживания.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field


class EventMetadata(BaseModel):
    """Метаданные события для трассировки."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_service: str = "order_tracking"


class TrackingEvent(BaseModel):
    """
    Базовый класс событий сессии отслеживания.

    Подписка идёт по классу события, а не по строковому имени.
    События неизменяемы и сериализуемы в JSON.
    """

    order_id: int | str
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    class Config:
        frozen = True

    @property
    def event_type(self) -> str:
        """Имя класса события."""
        return type(self).__name__

    def to_json(self) -> str:
        """Сериализует событие в JSON (с полем event_type)."""
        return json.dumps(
            {"event_type": self.event_type, **self.model_dump(mode="json")},
            ensure_ascii=False,
        )

    @property
    def event_id(self) -> str:
        """Уникальный идентификатор события."""
        return self.metadata.event_id


EventT = TypeVar("EventT", bound=TrackingEvent)
