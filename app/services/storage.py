"""
Object Storage

Local filesystem store for raw uploaded bytes. Objects are keyed by
``<owner_id>/<uuid>-<filename>`` relative to ``STORAGE_ROOT``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

from app.core.config import settings
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def build_object_key(owner_id: uuid.UUID, filename: str) -> str:
    """Return a fresh storage key; only the base name of ``filename`` is kept."""
    return f"{owner_id}/{uuid.uuid4()}-{Path(filename).name}"


class LocalObjectStorage:
    """
    Async wrapper over a directory tree.

    Blocking file I/O runs via ``asyncio.to_thread``.

    Usage::

        storage = LocalObjectStorage()
        key = await storage.save(owner_id, "policy.pdf", raw)
        raw = await storage.read(key)
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root or settings.STORAGE_ROOT).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise StorageError(f"Invalid storage key: '{key}'")
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(self, owner_id: uuid.UUID, filename: str, data: bytes) -> str:
        """
        Store ``data`` and return its key.

        Raises:
            StorageError: The file could not be written.
        """
        key = build_object_key(owner_id, filename)
        path = self._resolve(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            logger.error("Could not write %s: %s", key, e)
            raise StorageError(f"Could not store '{filename}': {e}") from e

        logger.info("Stored %s (%d bytes)", key, len(data))
        return key

    async def read(self, key: str) -> bytes:
        """
        Return the bytes stored under ``key``.

        Raises:
            StorageError: The object is missing or unreadable.
        """
        path = self._resolve(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.error("Could not read %s: %s", key, e)
            raise StorageError(f"Could not read stored object '{key}': {e}") from e
