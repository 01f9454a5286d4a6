"""Key derivation — master xpub from xprv, child keys at absolute paths.

Every function here is pure. Paths follow the absolute, unhardened BIP32
grammar ``m/<index>/<index>/...`` with canonical decimal indices; anything
else (hardened markers, relative or wildcard paths, leading zeros) is
rejected with :class:`DerivationError`.
"""

from __future__ import annotations

import re

from handle_wallet.errors import DerivationError
from handle_wallet.keys.bip32 import HARDENED_OFFSET, ExtendedKey

HANDLE_PATH_RE = re.compile(r"^m(/(0|[1-9]\d*))+$")


def is_handle_path(path: object) -> bool:
    """Return True if *path* is an absolute unhardened BIP32 path."""
    return isinstance(path, str) and HANDLE_PATH_RE.fullmatch(path) is not None


def parse_path(path: str) -> list[int]:
    """Split an absolute unhardened path into its child indices.

    Raises:
        DerivationError: If the path does not match the grammar or an
            index falls in the hardened range.
    """
    if not is_handle_path(path):
        msg = f"Invalid derivation path: {path!r}"
        raise DerivationError(msg)
    indices = [int(part) for part in path.split("/")[1:]]
    if any(index >= HARDENED_OFFSET for index in indices):
        msg = f"Derivation path index out of range: {path!r}"
        raise DerivationError(msg)
    return indices


def _load(extended_key: str, *, private: bool) -> ExtendedKey:
    try:
        key = ExtendedKey.from_string(extended_key)
    except ValueError as exc:
        msg = f"Invalid extended key: {exc}"
        raise DerivationError(msg) from exc
    if private and not key.is_private:
        msg = "Unable to derive private key: extended key is public"
        raise DerivationError(msg)
    return key


def _derive(extended_key: str, path: str, *, private: bool) -> ExtendedKey:
    indices = parse_path(path)
    root = _load(extended_key, private=private)
    try:
        return root.derive_indices(indices)
    except ValueError as exc:
        kind = "private" if private else "public"
        msg = f"Unable to derive {kind} key at {path}: {exc}"
        raise DerivationError(msg) from exc


def master_public_from_private(master_xprv: str) -> str:
    """Return the extended public key matching *master_xprv*."""
    return _load(master_xprv, private=True).neuter().to_string()


def derive_public(master_xpub: str, path: str) -> str:
    """Hex-encoded 33-byte compressed public key at *path*.

    *master_xpub* may also be an xprv; only its public half is used.
    """
    return _derive(master_xpub, path, private=False).public_key().hex()


def derive_private(master_xprv: str, path: str) -> str:
    """Hex-encoded 32-byte private key at *path*."""
    derived = _derive(master_xprv, path, private=True)
    return derived.key.hex()
