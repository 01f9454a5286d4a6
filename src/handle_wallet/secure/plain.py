"""Secret store kept in the general store, without any access gate."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from handle_wallet.storage.client import GeneralStore

_KEY_PREFIX = "secret:"


class PlainSecretStore:
    """Stores secrets as ordinary items, namespaced under ``secret:``."""

    def __init__(self, store: GeneralStore) -> None:
        self._store = store

    async def unlock(self, passphrase: str) -> None:  # noqa: ARG002, ASYNC910
        """No gate to open."""

    def lock(self) -> None:
        """No gate to close."""

    async def get_secret(self, name: str) -> str | None:
        return await self._store.get_item(_KEY_PREFIX + name)

    async def set_secret(self, name: str, value: str) -> None:
        await self._store.set_item(_KEY_PREFIX + name, value)

    async def delete_secret(self, name: str) -> None:
        await self._store.remove_item(_KEY_PREFIX + name)
