"""Key derivation — BIP32 keys, mnemonics and handle scripts."""

from __future__ import annotations

from handle_wallet.keys.derivation import (
    derive_private,
    derive_public,
    is_handle_path,
    master_public_from_private,
    parse_path,
)
from handle_wallet.keys.script import p2tr_script_from_pub, script_for_path

__all__ = [
    "derive_private",
    "derive_public",
    "is_handle_path",
    "master_public_from_private",
    "p2tr_script_from_pub",
    "parse_path",
    "script_for_path",
]
