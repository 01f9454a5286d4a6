"""General persisted key-value store with memory and file backends."""

from __future__ import annotations

from handle_wallet.storage.client import GeneralStore, StorageClient

__all__ = ["GeneralStore", "StorageClient"]
