"""BIP39 mnemonic helpers for master key setup."""

from __future__ import annotations

from mnemonic import Mnemonic

from handle_wallet.keys.bip32 import ExtendedKey

_WORDLIST = Mnemonic("english")


def generate_mnemonic(strength: int = 128) -> str:
    """Generate a fresh English BIP39 mnemonic (12 words at 128 bits)."""
    return _WORDLIST.generate(strength=strength)


def validate_mnemonic(words: str) -> bool:
    """Check word list membership and checksum."""
    try:
        return _WORDLIST.check(words)
    except (LookupError, ValueError):
        return False


def _master_from_mnemonic(words: str) -> ExtendedKey:
    seed = Mnemonic.to_seed(words, passphrase="")
    return ExtendedKey.from_seed(seed)


def xprv_from_mnemonic(words: str) -> str:
    """Master extended private key for *words* (empty BIP39 passphrase)."""
    return _master_from_mnemonic(words).to_string()


def xpub_from_mnemonic(words: str) -> str:
    """Master extended public key for *words* (empty BIP39 passphrase)."""
    return _master_from_mnemonic(words).neuter().to_string()
