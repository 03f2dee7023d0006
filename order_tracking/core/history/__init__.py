"""
История наблюдаемых позиций устройства.
"""

from order_tracking.core.history.store import ItemStorage, LocationHistoryStore

__all__ = ["ItemStorage", "LocationHistoryStore"]
