"""Error hierarchy for handle-wallet."""

from __future__ import annotations

from handle_wallet.errors.wallet_errors import (
    DerivationError,
    KeystoreError,
    PurchaseError,
    RegistryError,
    SecureStoreLockedError,
    StorageError,
    ValidationError,
    WalletError,
)

__all__ = [
    "DerivationError",
    "KeystoreError",
    "PurchaseError",
    "RegistryError",
    "SecureStoreLockedError",
    "StorageError",
    "ValidationError",
    "WalletError",
]
