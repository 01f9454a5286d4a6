"""SecretStore protocol."""

from __future__ import annotations

from typing import Protocol


class SecretStore(Protocol):
    """Capability interface for storing named secrets.

    Every method may raise :class:`~handle_wallet.errors.StorageError`;
    callers propagate it. Gated variants raise
    :class:`~handle_wallet.errors.SecureStoreLockedError` until unlocked.
    """

    async def unlock(self, passphrase: str) -> None: ...

    def lock(self) -> None: ...

    async def get_secret(self, name: str) -> str | None: ...

    async def set_secret(self, name: str, value: str) -> None: ...

    async def delete_secret(self, name: str) -> None: ...
