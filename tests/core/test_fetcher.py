# tests/core/test_fetcher.py
"""
Тесты для получения позиции транспорта (order_tracking/core/tracking/fetcher.py).
"""

from __future__ import annotations

import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import FakeClock, FakeReader, position_payload
from order_tracking.common.constants import FetchStatus
from order_tracking.core.tracking.fetcher import RemotePositionFetcher, _parse_timestamp
from order_tracking.infra.kv_client import KeyValueError
from order_tracking.shared.models.location import Coordinate


KEY = "location:order:42"


class TestParseTimestamp:
    """Тесты для _parse_timestamp."""

    def test_epoch_ms(self) -> None:
        """Число — уже миллисекунды."""
        assert _parse_timestamp(1_700_000_000_123, 0) == 1_700_000_000_123

    def test_numeric_string(self) -> None:
        """Строка из цифр — миллисекунды."""
        assert _parse_timestamp("1700000000123", 0) == 1_700_000_000_123

    def test_iso_string(self) -> None:
        """ISO-8601 с Z переводится в мс."""
        assert _parse_timestamp("2023-11-14T22:13:20Z", 0) == 1_700_000_000_000

    def test_naive_iso_is_utc(self) -> None:
        """ISO без зоны считается UTC."""
        assert _parse_timestamp("2023-11-14T22:13:20", 0) == 1_700_000_000_000

    def test_missing_uses_default(self) -> None:
        """Нет timestamp -> значение по умолчанию."""
        assert _parse_timestamp(None, 555) == 555
        assert _parse_timestamp("", 555) == 555

    def test_garbage_raises(self) -> None:
        """Некорректная строка -> ValueError."""
        with pytest.raises(ValueError):
            _parse_timestamp("yesterday", 0)
        with pytest.raises(ValueError):
            _parse_timestamp(True, 0)


class TestRemotePositionFetcher:
    """Тесты для RemotePositionFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_success(self, clock: FakeClock) -> None:
        """Позиция разбирается в VehicleLocationRecord."""
        reader = FakeReader({KEY: position_payload(50.45, 30.52, timestamp=1_700_000_000_500)})
        fetcher = RemotePositionFetcher(reader, clock=clock)

        record = await fetcher.fetch(42)

        assert reader.calls == [KEY]
        assert record is not None
        assert record.latitude == 50.45
        assert record.longitude == 30.52
        assert record.timestamp == 1_700_000_000_500
        assert record.order_id == 42
        assert record.user_type == "driver"
        assert record.distance_m is None

    @pytest.mark.asyncio
    async def test_fetch_with_destination_attaches_distance(self, clock: FakeClock) -> None:
        """С точкой назначения добавляются distance_m и distance_km."""
        reader = FakeReader({KEY: position_payload(0, 0)})
        fetcher = RemotePositionFetcher(reader, clock=clock)

        record = await fetcher.fetch(42, Coordinate(latitude=0, longitude=0.0005))

        assert record.distance_m == pytest.approx(55.6, abs=0.1)
        assert record.distance_km == pytest.approx(record.distance_m / 1000)

    @pytest.mark.asyncio
    async def test_missing_timestamp_uses_fetch_time(self, clock: FakeClock) -> None:
        """Нет timestamp -> время запроса."""
        payload = json.dumps({"latitude": 1, "longitude": 2})
        fetcher = RemotePositionFetcher(FakeReader({KEY: payload}), clock=clock)

        record = await fetcher.fetch(42)

        assert record.timestamp == clock.now
        assert record.order_id == 42

    @pytest.mark.asyncio
    async def test_nonexistent_key_is_no_data(self, fake_reader: FakeReader, clock: FakeClock) -> None:
        """Несуществующий ключ -> None, а не исключение."""
        fetcher = RemotePositionFetcher(fake_reader, clock=clock)

        result = await fetcher.fetch_with_status(42)

        assert result.status == FetchStatus.NO_DATA
        assert result.record is None
        assert await fetcher.fetch(42) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        "{not json",
        json.dumps([1, 2]),
        json.dumps({"longitude": 30}),
        json.dumps({"latitude": 91, "longitude": 30}),
        json.dumps({"latitude": "north", "longitude": 30}),
        json.dumps({"latitude": 50, "longitude": 30, "timestamp": "soon"}),
    ])
    async def test_malformed_payload(self, payload: str, clock: FakeClock) -> None:
        """Некорректные данные -> MALFORMED и None."""
        fetcher = RemotePositionFetcher(FakeReader({KEY: payload}), clock=clock)

        result = await fetcher.fetch_with_status(42)

        assert result.status == FetchStatus.MALFORMED
        assert result.record is None
        assert result.reason

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        KeyValueError("HTTP 500"),
        RedisConnectionError("connection refused"),
        OSError("network unreachable"),
    ])
    async def test_transport_error(self, error: Exception, clock: FakeClock) -> None:
        """Сбой транспорта -> TRANSPORT_ERROR и None."""
        fetcher = RemotePositionFetcher(FakeReader(queue=[error]), clock=clock)

        result = await fetcher.fetch_with_status(42)

        assert result.status == FetchStatus.TRANSPORT_ERROR
        assert result.record is None
        assert not result.ok

    @pytest.mark.asyncio
    async def test_not_configured(self, clock: FakeClock) -> None:
        """Без источника -> NOT_CONFIGURED."""
        fetcher = RemotePositionFetcher(None, clock=clock)
        result = await fetcher.fetch_with_status(42)
        assert result.status == FetchStatus.NOT_CONFIGURED

    def test_key_prefix(self) -> None:
        """Ключ строится из префикса и order_id."""
        fetcher = RemotePositionFetcher(None, key_prefix="loc:")
        assert fetcher.key_for("abc") == "loc:abc"
        assert RemotePositionFetcher(None).key_for(7) == "location:order:7"
