# order_tracking/infra/storage.py
"""
Локальное долговременное хранилище: одна JSON-запись на ключ.
Запись атомарна: временный файл + rename.
"""

from __future__ import annotations

import asyncio
import os
import re
import tempfile
from pathlib import Path


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class StorageError(Exception):
    """Ошибка чтения/записи локального хранилища."""


class JsonFileStorage:
    """
    Key/value хранилище строк в файлах <dir>/<key>.json.

    Файловые операции выполняются в пуле потоков, чтобы не блокировать
    event loop.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageError(f"Недопустимый ключ хранилища: {key!r}")
        return self._directory / f"{key}.json"

    async def get_item(self, key: str) -> str | None:
        """Читает значение; None если ключа нет."""
        path = self._path(key)
        try:
            return await asyncio.to_thread(self._read, path)
        except OSError as e:
            raise StorageError(f"Не удалось прочитать {path}: {e}") from e

    async def set_item(self, key: str, value: str) -> None:
        """Атомарно записывает значение."""
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write_atomic, path, value)
        except OSError as e:
            raise StorageError(f"Не удалось записать {path}: {e}") from e

    async def remove_item(self, key: str) -> None:
        """Удаляет значение (отсутствие ключа не ошибка)."""
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Не удалось удалить {path}: {e}") from e

    @staticmethod
    def _read(path: Path) -> str | None:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _write_atomic(path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            # Старый файл остаётся нетронутым
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
