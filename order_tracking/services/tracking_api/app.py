# order_tracking/services/tracking_api/app.py
"""
FastAPI приложение для отслеживания заказов.

Endpoints:
- POST /api/v1/sessions - запустить отслеживание заказа
- GET /api/v1/sessions/{order_id} - состояние сессии
- POST /api/v1/sessions/{order_id}/observations - наблюдение GPS устройства
- PUT /api/v1/sessions/{order_id}/destination - сменить точку назначения
- DELETE /api/v1/sessions/{order_id} - остановить отслеживание
- GET /api/v1/vehicles/{order_id} - разовый запрос позиции транспорта
- GET /api/v1/history - история локаций (диапазон)
- GET /api/v1/history/latest - последняя локация
- GET /api/v1/history/stats - статистика истории
- DELETE /api/v1/history - очистить историю
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from order_tracking import __version__
from order_tracking.common.constants import FetchStatus, RouteProfile
from order_tracking.core.tracking.context import TrackingContext
from order_tracking.core.tracking.session import SessionSnapshot
from order_tracking.shared.models.location import (
    Coordinate,
    HistoryStats,
    ObservedPosition,
    VehicleLocationRecord,
)


# === MODELS ===

class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    status: str
    service: str
    version: str
    redis: bool = False
    sessions: int = 0


class StartSessionRequest(BaseModel):
    """Запуск сессии отслеживания."""
    order_id: int | str
    destination: Coordinate | None = None
    profile: RouteProfile | None = None
    track_vehicle: bool = True
    poll_interval_ms: int | None = Field(default=None, gt=0)


class ObservationRequest(BaseModel):
    """Наблюдение GPS устройства (onPositionObserved)."""
    latitude: float
    longitude: float
    accuracy: float = Field(default=0.0, ge=0)
    timestamp: int | None = Field(default=None, ge=0)  # мс


class DestinationRequest(BaseModel):
    """Новая точка назначения (null - сбросить)."""
    destination: Coordinate | None = None


class ObservationResponse(BaseModel):
    """Решение фильтра обновлений."""
    accepted: bool
    reason: str


class VehicleResponse(BaseModel):
    """Результат разового запроса позиции транспорта."""
    status: FetchStatus
    location: VehicleLocationRecord | None = None
    reason: str = ""


# === CONTEXT ===

def get_context(request: Request) -> TrackingContext:
    """Контекст отслеживания из состояния приложения."""
    context = getattr(request.app.state, "tracking", None)
    if context is None or not context.is_initialized:
        raise HTTPException(status_code=503, detail="Сервис не инициализирован")
    return context


def _session_or_404(context: TrackingContext, order_id: str):
    session = context.get_session(order_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Сессия не найдена")
    return session


# === APP FACTORY ===

def create_app(context: TrackingContext | None = None) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        context: Готовый контекст (по умолчанию создаётся из конфигурации)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        tracking = context or TrackingContext()
        await tracking.init()
        app.state.tracking = tracking

        yield

        await tracking.teardown()

    app = FastAPI(
        title="Order Tracking",
        description="Отслеживание заказа в реальном времени и троттлинг отрисовки маршрута.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса."""
        tracking = get_context(request)
        redis_ok = False
        if tracking.redis is not None and tracking.redis.is_connected:
            redis_ok = await tracking.redis.health_check()
        return HealthStatus(
            status="healthy",
            service="order_tracking",
            version=__version__,
            redis=redis_ok,
            sessions=len(tracking.sessions),
        )

    # === SESSIONS ===

    @app.post(
        "/api/v1/sessions",
        response_model=SessionSnapshot,
        status_code=201,
        tags=["Sessions"],
        summary="Запустить отслеживание",
    )
    async def start_session(body: StartSessionRequest, request: Request) -> SessionSnapshot:
        """
        Запускает сессию отслеживания заказа.

        Существующая сессия для того же заказа заменяется.
        """
        tracking = get_context(request)
        session = await tracking.start_session(
            body.order_id,
            destination=body.destination,
            profile=body.profile,
            track_vehicle=body.track_vehicle,
            poll_interval_ms=body.poll_interval_ms,
        )
        return session.snapshot()

    @app.get(
        "/api/v1/sessions/{order_id}",
        response_model=SessionSnapshot,
        responses={404: {"description": "Сессия не найдена"}},
        tags=["Sessions"],
        summary="Состояние сессии",
    )
    async def get_session(order_id: str, request: Request) -> SessionSnapshot:
        """Текущее состояние сессии отслеживания."""
        return _session_or_404(get_context(request), order_id).snapshot()

    @app.post(
        "/api/v1/sessions/{order_id}/observations",
        response_model=ObservationResponse,
        responses={404: {"description": "Сессия не найдена"}},
        tags=["Sessions"],
        summary="Наблюдение GPS устройства",
    )
    async def observe_position(
        order_id: str,
        body: ObservationRequest,
        request: Request,
    ) -> ObservationResponse:
        """
        Передаёт наблюдение устройства в сессию.

        Некорректные координаты не являются ошибкой запроса:
        наблюдение отбрасывается с reason=invalid_coordinate.
        """
        session = _session_or_404(get_context(request), order_id)
        decision = await session.on_position_observed(
            body.latitude,
            body.longitude,
            accuracy=body.accuracy,
            timestamp=body.timestamp,
        )
        return ObservationResponse(accepted=decision.accepted, reason=decision.reason)

    @app.put(
        "/api/v1/sessions/{order_id}/destination",
        response_model=SessionSnapshot,
        responses={404: {"description": "Сессия не найдена"}},
        tags=["Sessions"],
        summary="Сменить точку назначения",
    )
    async def set_destination(
        order_id: str,
        body: DestinationRequest,
        request: Request,
    ) -> SessionSnapshot:
        """Меняет точку назначения; маршрут перерисовывается от известной позиции."""
        session = _session_or_404(get_context(request), order_id)
        await session.set_destination(body.destination)
        return session.snapshot()

    @app.delete(
        "/api/v1/sessions/{order_id}",
        responses={404: {"description": "Сессия не найдена"}},
        tags=["Sessions"],
        summary="Остановить отслеживание",
    )
    async def stop_session(order_id: str, request: Request) -> dict[str, str]:
        """Останавливает сессию отслеживания."""
        if not await get_context(request).stop_session(order_id):
            raise HTTPException(status_code=404, detail="Сессия не найдена")
        return {"status": "stopped", "order_id": order_id}

    # === VEHICLES ===

    @app.get(
        "/api/v1/vehicles/{order_id}",
        response_model=VehicleResponse,
        tags=["Vehicles"],
        summary="Позиция транспорта",
    )
    async def get_vehicle(
        order_id: str,
        request: Request,
        dest_lat: float | None = Query(default=None, ge=-90, le=90),
        dest_lng: float | None = Query(default=None, ge=-180, le=180),
    ) -> VehicleResponse:
        """
        Разовый запрос позиции транспорта.

        Отсутствие данных — нормальное состояние: ответ 200 со status=no_data.
        """
        destination = None
        if dest_lat is not None and dest_lng is not None:
            destination = Coordinate(latitude=dest_lat, longitude=dest_lng)

        result = await get_context(request).fetch_vehicle(order_id, destination)
        return VehicleResponse(status=result.status, location=result.record, reason=result.reason)

    # === HISTORY ===

    @app.get(
        "/api/v1/history",
        response_model=list[ObservedPosition],
        tags=["History"],
        summary="История локаций",
    )
    async def get_history(
        request: Request,
        start: int | None = Query(default=None, ge=0),
        end: int | None = Query(default=None, ge=0),
    ) -> list[ObservedPosition]:
        """История локаций, новые первыми. start/end — мс, включительно."""
        history = get_context(request).history
        if start is None and end is None:
            return await history.query_all()
        if start is not None and end is not None and start > end:
            raise HTTPException(status_code=400, detail="start больше end")
        return await history.query_range(start or 0, end if end is not None else 2**63 - 1)

    @app.get(
        "/api/v1/history/latest",
        response_model=ObservedPosition,
        responses={404: {"description": "История пуста"}},
        tags=["History"],
        summary="Последняя локация",
    )
    async def get_latest(request: Request) -> ObservedPosition:
        """Последняя сохранённая локация."""
        latest = await get_context(request).history.most_recent()
        if latest is None:
            raise HTTPException(status_code=404, detail="История пуста")
        return latest

    @app.get(
        "/api/v1/history/stats",
        response_model=HistoryStats,
        tags=["History"],
        summary="Статистика истории",
    )
    async def get_history_stats(request: Request) -> HistoryStats:
        """Количество записей, диапазон и примерный размер."""
        return await get_context(request).history.stats()

    @app.delete(
        "/api/v1/history",
        tags=["History"],
        summary="Очистить историю",
    )
    async def clear_history(request: Request) -> dict[str, Any]:
        """Удаляет всю историю локаций."""
        await get_context(request).history.clear()
        return {"status": "cleared"}

    return app


# === APP ===

app = create_app()
