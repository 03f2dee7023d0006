# order_tracking/common/clock.py
"""
Источник времени в миллисекундах (epoch).
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Текущее время в миллисекундах."""
    return int(time.time() * 1000)
