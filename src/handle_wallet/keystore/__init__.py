"""Keystore — master public key plus per-network handle → path records."""

from __future__ import annotations

from handle_wallet.keystore.models import HandleRecord, HandlesMap, KeystoreState
from handle_wallet.keystore.service import Keystore, next_handle_path

__all__ = ["HandleRecord", "HandlesMap", "Keystore", "KeystoreState", "next_handle_path"]
