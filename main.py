#!/usr/bin/env python3
# main.py
"""
Главная точка входа Order Tracking.
Запускает HTTP API отслеживания заказов.
"""

from __future__ import annotations

import asyncio
import signal

import uvicorn

from order_tracking.common.constants import TypeMsg
from order_tracking.common.logger import log_info, setup_logging
from order_tracking.config import settings


async def run_tracking_api() -> None:
    """Запускает Tracking API (сессии, наблюдения, история)."""
    host = settings.deployment.TRACKING_API_HOST
    port = settings.deployment.TRACKING_API_PORT

    await log_info(f"Запуск Tracking API на {host}:{port}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        "order_tracking.services.tracking_api.app:app",
        host=host,
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Tracking API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def main() -> None:
    """Главная функция запуска."""
    setup_logging()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} — запуск",
        type_msg=TypeMsg.INFO,
    )

    task = asyncio.create_task(run_tracking_api())

    def signal_handler(sig: int) -> None:
        if not task.done():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            task.cancel()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        pass

    try:
        await task
    except asyncio.CancelledError:
        pass

    await log_info("Order Tracking остановлен", type_msg=TypeMsg.INFO)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
