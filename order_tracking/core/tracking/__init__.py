"""
Отслеживание заказа: опрос, троттлинг, отрисовка, сессии.
"""

from order_tracking.core.tracking.context import TrackingContext
from order_tracking.core.tracking.dispatcher import RenderCommandDispatcher, RenderSurface
from order_tracking.core.tracking.fetcher import FetchResult, KeyValueReader, RemotePositionFetcher
from order_tracking.core.tracking.poller import CancellationToken, PollingHandle, PositionPoller
from order_tracking.core.tracking.session import SessionSnapshot, TrackingSession
from order_tracking.core.tracking.throttle import (
    Anchor,
    RedrawDecision,
    ThrottleConfig,
    ThrottleEngine,
    ThrottleState,
    UpdateDecision,
)

__all__ = [
    "TrackingContext",
    "RenderCommandDispatcher",
    "RenderSurface",
    "FetchResult",
    "KeyValueReader",
    "RemotePositionFetcher",
    "CancellationToken",
    "PollingHandle",
    "PositionPoller",
    "SessionSnapshot",
    "TrackingSession",
    "Anchor",
    "RedrawDecision",
    "ThrottleConfig",
    "ThrottleEngine",
    "ThrottleState",
    "UpdateDecision",
]
