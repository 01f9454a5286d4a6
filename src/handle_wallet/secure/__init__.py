"""Secure store for the master private key.

Two variants share the :class:`SecretStore` interface:

- ``plain`` keeps secrets in the general store (no gate).
- ``encrypted`` keeps them Fernet-encrypted on disk and refuses access
  until unlocked with a passphrase.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from handle_wallet.secure.base import SecretStore
from handle_wallet.secure.encrypted import EncryptedSecretStore
from handle_wallet.secure.plain import PlainSecretStore

if TYPE_CHECKING:
    from handle_wallet.config.settings import SecureStoreConfig
    from handle_wallet.storage.client import GeneralStore

__all__ = ["EncryptedSecretStore", "PlainSecretStore", "SecretStore", "create_secret_store"]


def create_secret_store(config: SecureStoreConfig, general_store: GeneralStore) -> SecretStore:
    """Build the secure store variant selected by *config*.

    Raises:
        ValueError: If the engine is not recognised.
    """
    engine = config.engine.lower()
    if engine == "plain":
        return PlainSecretStore(general_store)
    if engine == "encrypted":
        return EncryptedSecretStore(config.path, iterations=config.kdf_iterations)
    msg = f"Unsupported secure store engine: {engine}"
    raise ValueError(msg)
