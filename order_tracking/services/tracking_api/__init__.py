# order_tracking/services/tracking_api/__init__.py
"""
Tracking API — HTTP интерфейс сессий отслеживания.

Обеспечивает:
- Запуск/остановку сессий отслеживания заказа
- Приём наблюдений GPS устройства
- Разовый запрос позиции транспорта
- Доступ к истории локаций
"""
