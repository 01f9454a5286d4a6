"""Storage client abstraction with file and in-memory backends."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from handle_wallet.errors import StorageError

if TYPE_CHECKING:
    from handle_wallet.config.settings import StorageConfig


class GeneralStore(Protocol):
    """Key-value string store used for the keystore JSON blob."""

    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class StorageBackend(GeneralStore, Protocol):
    """Backend lifecycle on top of the store operations."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...


class StorageClient:
    """General store that delegates to a file or in-memory backend."""

    def __init__(self, config: StorageConfig) -> None:
        """Initialize storage client with configuration.

        Args:
            config: Storage configuration with engine type and file path.
        """
        self._config = config
        self._backend: StorageBackend | None = None

    async def connect(self) -> None:
        """Open the configured backend.

        Raises:
            ValueError: If the storage engine type is invalid.
        """
        from handle_wallet.storage.file import FileStore
        from handle_wallet.storage.memory import MemoryStore

        engine = self._config.engine.lower()

        if engine == "file":
            self._backend = FileStore(self._config.path)
        elif engine == "memory":
            self._backend = MemoryStore()
        else:
            msg = f"Unsupported storage engine: {engine}"
            raise ValueError(msg)

        await self._backend.connect()

    async def close(self) -> None:
        """Close the backend (idempotent)."""
        if self._backend is not None:
            await self._backend.close()
            self._backend = None

    @property
    def is_connected(self) -> bool:
        """Check if a backend is open."""
        return self._backend is not None

    async def get_item(self, key: str) -> str | None:
        """Return the stored string for *key*, or None."""
        return await self._ensure_connected().get_item(key)

    async def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, durably before returning."""
        await self._ensure_connected().set_item(key, value)

    async def remove_item(self, key: str) -> None:
        """Delete *key* if present."""
        await self._ensure_connected().remove_item(key)

    def _ensure_connected(self) -> StorageBackend:
        if self._backend is None:
            msg = "Storage not connected. Call connect() first."
            raise StorageError(msg)
        return self._backend
