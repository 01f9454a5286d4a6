"""Locking scripts bound to handles — single-key pay-to-taproot.

A handle's script is ``OP_1 <32-byte output key>`` where the output key is
the BIP341 key-path tweak of the derived public key with no script tree
(as in BIP86).
"""

from __future__ import annotations

from coincurve import PublicKey

from handle_wallet.errors import DerivationError
from handle_wallet.keys.derivation import derive_public
from handle_wallet.utils.crypto import tagged_hash

OP_1 = 0x51
_PUSH_32 = 0x20


def taproot_output_key(internal_key: bytes) -> bytes:
    """Tweak a 32-byte x-only internal key into the taproot output key."""
    if len(internal_key) != 32:
        msg = f"Invalid x-only key length: {len(internal_key)}"
        raise ValueError(msg)
    tweak = tagged_hash("TapTweak", internal_key)
    point = PublicKey(b"\x02" + internal_key)
    return point.add(tweak).format(compressed=True)[1:]


def p2tr_script_from_pub(pubkey_hex: str) -> str:
    """Hex P2TR script pubkey for a hex compressed (or x-only) public key."""
    raw = bytes.fromhex(pubkey_hex)
    if len(raw) == 33:
        raw = raw[1:]
    output_key = taproot_output_key(raw)
    return bytes([OP_1, _PUSH_32]).hex() + output_key.hex()


def script_for_path(master_xpub: str, path: str) -> str:
    """Script pubkey controlled by the key at *path* under *master_xpub*."""
    try:
        return p2tr_script_from_pub(derive_public(master_xpub, path))
    except ValueError as exc:
        msg = f"Unable to build script at {path}: {exc}"
        raise DerivationError(msg) from exc
