"""
Order Tracking.
Отслеживание транспорта по заказу, история локаций устройства
и троттлинг отрисовки маршрута.
"""

__version__ = "1.0.0"
