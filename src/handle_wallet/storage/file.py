"""JSON-file store — one document holding every key.

Writes go to a temporary file in the same directory and are moved into
place with ``os.replace``, so a reader sees either the old or the new
document, never a partial one.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path

from handle_wallet.errors import StorageError

logger = logging.getLogger(__name__)


class FileStore:
    """Key-value store persisted as a single JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        """Initialize the file store.

        Args:
            path: Location of the JSON document. Created on first write.
        """
        self._path = Path(path)
        self._items: dict[str, str] = {}
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def connect(self) -> None:
        """Read the document into memory.

        An unreadable or malformed document is treated as empty; the next
        write replaces it.

        Raises:
            StorageError: If the file exists but cannot be read at all.
        """
        if not self._path.exists():
            self._items = {}
            return
        try:
            text = await asyncio.to_thread(self._path.read_text, "utf-8")
        except OSError as exc:
            msg = f"Failed to read {self._path}: {exc}"
            raise StorageError(msg) from exc
        try:
            data = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError:
            logger.warning("Store file %s is not valid JSON, starting empty", self._path)
            data = {}
        if not isinstance(data, dict):
            logger.warning("Store file %s is not a JSON object, starting empty", self._path)
            data = {}
        self._items = {k: v for k, v in data.items() if isinstance(v, str)}

    async def close(self) -> None:  # noqa: ASYNC910
        """Drop the in-memory copy."""
        self._items = {}

    async def get_item(self, key: str) -> str | None:  # noqa: ASYNC910
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            updated = {**self._items, key: value}
            await self._flush(updated)
            self._items = updated

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            if key not in self._items:
                return
            updated = {k: v for k, v in self._items.items() if k != key}
            await self._flush(updated)
            self._items = updated

    async def _flush(self, items: dict[str, str]) -> None:
        try:
            await asyncio.to_thread(atomic_write, self._path, json.dumps(items, indent=2))
        except OSError as exc:
            msg = f"Failed to write {self._path}: {exc}"
            raise StorageError(msg) from exc


def atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
