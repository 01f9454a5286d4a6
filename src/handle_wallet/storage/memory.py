"""In-memory store for tests and throwaway sessions."""

from __future__ import annotations


class MemoryStore:
    """Dict-backed store. Counts writes so callers can observe persistence."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self.write_count = 0

    async def connect(self) -> None:  # noqa: ASYNC910
        """Connect (no-op for in-memory)."""

    async def close(self) -> None:  # noqa: ASYNC910
        """Close and clear the store."""
        self._items.clear()

    async def get_item(self, key: str) -> str | None:  # noqa: ASYNC910
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:  # noqa: ASYNC910
        self._items[key] = value
        self.write_count += 1

    async def remove_item(self, key: str) -> None:  # noqa: ASYNC910
        if self._items.pop(key, None) is not None:
            self.write_count += 1
