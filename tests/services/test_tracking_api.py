# tests/services/test_tracking_api.py
"""
Тесты HTTP API отслеживания (order_tracking/services/tracking_api/app.py).
"""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeClock, FakeReader, MemoryStorage, RecordingSurface, position_payload
from order_tracking.config.loader import Settings
from order_tracking.core.tracking.context import TrackingContext
from order_tracking.services.tracking_api.app import create_app
from order_tracking.shared.models.location import ObservedPosition


class ApiHarness:
    """Приложение с контекстом на фейках."""

    def __init__(self, settings: Settings) -> None:
        self.clock = FakeClock()
        self.reader = FakeReader()
        self.storage = MemoryStorage()
        self.surfaces: dict[str, RecordingSurface] = {}
        self.context = TrackingContext(
            settings,
            kv_reader=self.reader,
            storage=self.storage,
            surface_factory=self._surface,
            clock=self.clock,
        )
        self.app: FastAPI = create_app(self.context)

    def _surface(self, order_id: int | str) -> RecordingSurface:
        surface = RecordingSurface()
        self.surfaces[str(order_id)] = surface
        return surface


@pytest.fixture
def harness(test_settings: Settings) -> ApiHarness:
    return ApiHarness(test_settings)


@pytest.fixture
def client(harness: ApiHarness) -> Iterator[TestClient]:
    with TestClient(harness.app) as test_client:
        yield test_client


class TestHealth:
    """Тесты health check."""

    def test_health(self, client: TestClient) -> None:
        """Сервис здоров, Redis отключён."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["redis"] is False
        assert data["sessions"] == 0

    def test_not_initialized(self, harness: ApiHarness) -> None:
        """Без lifespan контекст не инициализирован -> 503."""
        test_client = TestClient(harness.app)
        harness.app.state.tracking = harness.context

        assert test_client.get("/health").status_code == 503


class TestSessions:
    """Тесты сессий отслеживания."""

    def test_start_session(self, client: TestClient) -> None:
        """Запуск сессии возвращает её состояние."""
        response = client.post("/api/v1/sessions", json={
            "order_id": 42,
            "destination": {"latitude": 50.45, "longitude": 30.52},
            "profile": "walking",
            "track_vehicle": False,
        })

        assert response.status_code == 201
        data = response.json()
        assert data["order_id"] == 42
        assert data["state"] == "idle"
        assert data["profile"] == "walking"
        assert data["polling"] is False
        assert client.get("/health").json()["sessions"] == 1

    def test_get_session_not_found(self, client: TestClient) -> None:
        """Неизвестный заказ -> 404."""
        assert client.get("/api/v1/sessions/404").status_code == 404

    def test_invalid_poll_interval(self, client: TestClient) -> None:
        """Интервал опроса должен быть положительным."""
        response = client.post("/api/v1/sessions", json={"order_id": 1, "poll_interval_ms": 0})
        assert response.status_code == 422

    def test_observation_flow(self, client: TestClient, harness: ApiHarness) -> None:
        """Первое наблюдение принимается, повтор вскоре после — нет."""
        client.post("/api/v1/sessions", json={"order_id": "A-1", "track_vehicle": False})
        now = harness.clock.now

        first = client.post("/api/v1/sessions/A-1/observations", json={
            "latitude": 50.45, "longitude": 30.52, "timestamp": now,
        })
        second = client.post("/api/v1/sessions/A-1/observations", json={
            "latitude": 50.46, "longitude": 30.52, "timestamp": now + 1_000,
        })

        assert first.json() == {"accepted": True, "reason": "first"}
        assert second.json() == {"accepted": False, "reason": "too_soon"}
        assert len(harness.surfaces["A-1"].markers) == 1

        snapshot = client.get("/api/v1/sessions/A-1").json()
        assert snapshot["state"] == "tracking"
        assert snapshot["device_position"]["latitude"] == 50.45

    def test_invalid_observation_not_an_error(self, client: TestClient) -> None:
        """Координаты вне диапазона отбрасываются без ошибки запроса."""
        client.post("/api/v1/sessions", json={"order_id": 7, "track_vehicle": False})

        response = client.post("/api/v1/sessions/7/observations", json={"latitude": 91, "longitude": 0})

        assert response.status_code == 200
        assert response.json() == {"accepted": False, "reason": "invalid_coordinate"}

    def test_set_destination(self, client: TestClient) -> None:
        """Смена точки назначения отражается в состоянии; null сбрасывает её."""
        client.post("/api/v1/sessions", json={"order_id": 9, "track_vehicle": False})

        response = client.put("/api/v1/sessions/9/destination", json={
            "destination": {"latitude": 50.45, "longitude": 30.52},
        })

        assert response.status_code == 200
        assert response.json()["destination"] == {"latitude": 50.45, "longitude": 30.52}
        assert response.json()["route_pending"] is False

        cleared = client.put("/api/v1/sessions/9/destination", json={"destination": None})
        assert cleared.json()["destination"] is None
        assert client.put("/api/v1/sessions/404/destination", json={}).status_code == 404

    def test_stop_session(self, client: TestClient) -> None:
        """Остановка сессии; повторная остановка -> 404."""
        client.post("/api/v1/sessions", json={"order_id": 5, "track_vehicle": False})

        assert client.delete("/api/v1/sessions/5").json() == {"status": "stopped", "order_id": "5"}
        assert client.delete("/api/v1/sessions/5").status_code == 404
        assert client.get("/api/v1/sessions/5").status_code == 404


class TestVehicles:
    """Тесты разового запроса позиции транспорта."""

    def test_no_data(self, client: TestClient) -> None:
        """Нет данных — 200 со status=no_data."""
        response = client.get("/api/v1/vehicles/42")

        assert response.status_code == 200
        assert response.json()["status"] == "no_data"
        assert response.json()["location"] is None

    def test_location_with_distance(self, client: TestClient, harness: ApiHarness) -> None:
        """Позиция транспорта с расстоянием до точки назначения."""
        harness.reader.values["location:order:42"] = position_payload(50.45, 30.52)

        response = client.get("/api/v1/vehicles/42", params={"dest_lat": 50.46, "dest_lng": 30.52})

        data = response.json()
        assert data["status"] == "ok"
        assert data["location"]["latitude"] == 50.45
        assert 1_000 < data["location"]["distance_m"] < 1_200

    def test_malformed(self, client: TestClient, harness: ApiHarness) -> None:
        """Некорректное значение в хранилище -> status=malformed."""
        harness.reader.values["location:order:42"] = "{not json"
        assert client.get("/api/v1/vehicles/42").json()["status"] == "malformed"


class TestHistory:
    """Тесты истории локаций."""

    def _append(self, client: TestClient, harness: ApiHarness, timestamp: int) -> None:
        position = ObservedPosition(latitude=50.45, longitude=30.52, timestamp=timestamp)
        client.portal.call(harness.context.history.append, position)

    def test_empty(self, client: TestClient) -> None:
        """Пустая история."""
        assert client.get("/api/v1/history").json() == []
        assert client.get("/api/v1/history/latest").status_code == 404
        assert client.get("/api/v1/history/stats").json()["count"] == 0

    def test_query(self, client: TestClient, harness: ApiHarness) -> None:
        """Диапазон, последняя запись и статистика."""
        now = harness.clock.now
        for offset in (3_000, 2_000, 1_000):
            self._append(client, harness, now - offset)

        everything = client.get("/api/v1/history").json()
        ranged = client.get("/api/v1/history", params={"start": now - 2_500, "end": now - 1_000}).json()
        latest = client.get("/api/v1/history/latest").json()
        stats = client.get("/api/v1/history/stats").json()

        assert [p["timestamp"] for p in everything] == [now - 1_000, now - 2_000, now - 3_000]
        assert [p["timestamp"] for p in ranged] == [now - 1_000, now - 2_000]
        assert latest["timestamp"] == now - 1_000
        assert stats["count"] == 3
        assert stats["oldest_timestamp"] == now - 3_000

    def test_bad_range(self, client: TestClient) -> None:
        """start > end -> 400."""
        assert client.get("/api/v1/history", params={"start": 10, "end": 5}).status_code == 400

    def test_clear(self, client: TestClient, harness: ApiHarness) -> None:
        """Очистка истории."""
        self._append(client, harness, harness.clock.now)

        assert client.delete("/api/v1/history").json() == {"status": "cleared"}
        assert client.get("/api/v1/history").json() == []
