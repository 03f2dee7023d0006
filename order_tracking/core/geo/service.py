# order_tracking/core/geo/service.py
"""
Обратное геокодирование через OpenStreetMap Nominatim.
Адрес — вспомогательные метаданные: ошибки не мешают кэшированию и троттлингу.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from order_tracking.common.constants import TypeMsg
from order_tracking.common.logger import log_error, log_info
from order_tracking.shared.models.location import AddressSnapshot


class ReverseGeocoder:
    """
    Координаты -> адрес.

    Nominatim требует описательный User-Agent и бережного темпа запросов;
    вызывается только для принятых наблюдений, которые уже прорежены
    фильтром обновлений.
    """

    DEFAULT_URL = "https://nominatim.openstreetmap.org/reverse"

    def __init__(
        self,
        url: str | None = None,
        user_agent: str = "OrderTracking/1.0",
        language: str = "en",
        timeout: float = 10.0,
        enabled: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            url: Адрес reverse эндпоинта
            user_agent: User-Agent (обязателен для Nominatim)
            language: Язык ответа
            timeout: Таймаут запроса в секундах
            enabled: Выключенный геокодер всегда возвращает None
            client: Готовый HTTP клиент
        """
        self._url = url or self.DEFAULT_URL
        self._language = language
        self._enabled = enabled
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        if self._owns_client:
            await self._client.aclose()

    async def reverse_geocode(
        self,
        latitude: float,
        longitude: float,
    ) -> Optional[AddressSnapshot]:
        """
        Обратное геокодирование: координаты -> адрес.

        Args:
            latitude: Широта
            longitude: Долгота

        Returns:
            Снимок адреса или None
        """
        if not self._enabled:
            return None

        try:
            response = await self._client.get(
                self._url,
                params={
                    "format": "json",
                    "lat": latitude,
                    "lon": longitude,
                    "zoom": 18,
                    "addressdetails": 1,
                    "accept-language": self._language,
                },
            )

            if response.status_code != 200:
                await log_info(
                    f"Геокодер ответил HTTP {response.status_code} для ({latitude}, {longitude})",
                    type_msg=TypeMsg.WARNING,
                )
                return None

            data = response.json()
            address = data.get("address") if isinstance(data, dict) else None
            if not address:
                return None

            return self._build_snapshot(data.get("display_name", ""), address)
        except Exception as e:
            await log_error(f"Ошибка обратного геокодирования: {e}")
            return None

    @staticmethod
    def _build_snapshot(display_name: str, address: dict[str, Any]) -> AddressSnapshot:
        """Собирает снимок адреса из ответа Nominatim."""
        city = address.get("city") or address.get("town") or address.get("village") or ""

        parts = [
            address.get("house_number", ""),
            address.get("road", ""),
            address.get("suburb", ""),
            address.get("city") or address.get("town") or "",
            address.get("state", ""),
            address.get("postcode", ""),
        ]
        short_address = ", ".join(p for p in parts if p) or display_name

        return AddressSnapshot(
            formatted_address=display_name or None,
            address=short_address or None,
            house_number=address.get("house_number") or None,
            road=address.get("road") or None,
            neighborhood=address.get("neighbourhood") or None,
            suburb=address.get("suburb") or None,
            city=city or None,
            state=address.get("state") or None,
            postcode=address.get("postcode") or None,
            country=address.get("country") or None,
            country_code=address.get("country_code") or None,
        )
