"""BIP32 HD keys — xpub / xprv serialization and child key derivation.

Implements the parts of BIP32 the keystore needs:
- Extended key serialization / deserialization (xpub/xprv, Base58Check)
- Child key derivation (hardened & normal)
- Master key from a BIP39 seed
- Compressed public key encoding
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, field
from typing import Self

from ecdsa import SECP256k1, SigningKey
from ecdsa.ellipticcurve import INFINITY, Point

from handle_wallet.utils.crypto import hash160, sha256d

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CURVE = SECP256k1
_CURVE_ORDER = _CURVE.order
_CURVE_GEN = _CURVE.generator

# BIP32 version bytes (mainnet)
_XPUB_VERSION = b"\x04\x88\xb2\x1e"  # xpub
_XPRV_VERSION = b"\x04\x88\xad\xe4"  # xprv

# BIP32 version bytes (testnet)
_TPUB_VERSION = b"\x04\x35\x87\xcf"  # tpub
_TPRV_VERSION = b"\x04\x35\x83\x94"  # tprv

_MASTER_HMAC_KEY = b"Bitcoin seed"

HARDENED_OFFSET = 0x80000000


# ---------------------------------------------------------------------------
# Base58Check encoding / decoding
# ---------------------------------------------------------------------------

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(payload: bytes) -> str:
    """Encode raw bytes to Base58 (no checksum)."""
    n = int.from_bytes(payload, "big")
    result: list[int] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_B58_ALPHABET[remainder])
    # Preserve leading zero bytes
    for byte in payload:
        if byte == 0:
            result.append(_B58_ALPHABET[0])
        else:
            break
    return bytes(reversed(result)).decode("ascii")


def base58_decode(s: str) -> bytes:
    """Decode Base58 string to raw bytes (no checksum).

    Raises:
        ValueError: On characters outside the Base58 alphabet.
    """
    n = 0
    for char in s:
        digit = _B58_ALPHABET.find(char.encode("ascii", errors="replace"))
        if digit < 0:
            msg = f"Invalid Base58 character: {char!r}"
            raise ValueError(msg)
        n = n * 58 + digit
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_count = len(s) - len(s.lstrip("1"))
    return b"\x00" * pad_count + result


def base58check_encode(payload: bytes) -> str:
    """Encode bytes with a 4-byte SHA256d checksum (Base58Check)."""
    checksum = sha256d(payload)[:4]
    return base58_encode(payload + checksum)


def base58check_decode(s: str) -> bytes:
    """Decode a Base58Check string, verifying the checksum.

    Raises:
        ValueError: If the checksum is invalid.
    """
    raw = base58_decode(s)
    if len(raw) < 4:
        msg = "Base58Check string too short"
        raise ValueError(msg)
    payload, checksum = raw[:-4], raw[-4:]
    if checksum != sha256d(payload)[:4]:
        msg = "Base58Check checksum mismatch"
        raise ValueError(msg)
    return payload


# ---------------------------------------------------------------------------
# Point helpers
# ---------------------------------------------------------------------------


def private_key_to_public_key(privkey_bytes: bytes) -> bytes:
    """Derive the 33-byte SEC compressed public key from a 32-byte private key."""
    sk = SigningKey.from_string(privkey_bytes, curve=_CURVE)
    return compress_public_key(sk.get_verifying_key().to_string())


def compress_public_key(raw_pubkey: bytes) -> bytes:
    """Compress a 64-byte (or 65-byte with 0x04 prefix) raw public key to 33 bytes."""
    if len(raw_pubkey) == 65 and raw_pubkey[0] == 0x04:
        raw_pubkey = raw_pubkey[1:]
    if len(raw_pubkey) != 64:
        if len(raw_pubkey) == 33 and raw_pubkey[0] in (0x02, 0x03):
            return raw_pubkey
        msg = f"Invalid raw public key length: {len(raw_pubkey)}"
        raise ValueError(msg)
    x = int.from_bytes(raw_pubkey[:32], "big")
    y = int.from_bytes(raw_pubkey[32:], "big")
    prefix = b"\x02" if y % 2 == 0 else b"\x03"
    return prefix + x.to_bytes(32, "big")


def decompress_public_key(compressed: bytes) -> bytes:
    """Decompress a 33-byte compressed public key to 65-byte uncompressed."""
    if len(compressed) != 33:
        msg = f"Invalid compressed key length: {len(compressed)}"
        raise ValueError(msg)
    prefix = compressed[0]
    if prefix not in (0x02, 0x03):
        msg = f"Invalid compressed key prefix: {prefix:#x}"
        raise ValueError(msg)
    x = int.from_bytes(compressed[1:], "big")
    p = _CURVE.curve.p()
    # y^2 = x^3 + 7  (mod p)  for secp256k1
    y_sq = (pow(x, 3, p) + 7) % p
    y = pow(y_sq, (p + 1) // 4, p)
    if (y * y) % p != y_sq:
        msg = "Public key is not on the curve"
        raise ValueError(msg)
    if (y % 2 == 0) != (prefix == 0x02):
        y = p - y
    return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def _pubkey_to_point(compressed: bytes) -> Point:
    uncompressed = decompress_public_key(compressed)
    x = int.from_bytes(uncompressed[1:33], "big")
    y = int.from_bytes(uncompressed[33:65], "big")
    return Point(_CURVE.curve, x, y)


def _point_to_compressed(point: Point) -> bytes:
    prefix = b"\x02" if point.y() % 2 == 0 else b"\x03"
    return prefix + point.x().to_bytes(32, "big")


# ---------------------------------------------------------------------------
# BIP32 Extended Key
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtendedKey:
    """A BIP32 extended key (public or private).

    Attributes:
        key: 33-byte compressed pubkey *or* 32-byte privkey scalar.
        chain_code: 32-byte chain code.
        depth: Derivation depth (0 for master).
        child_index: Index used in derivation.
        is_private: True if this key holds the private scalar.
        testnet: True if this is a testnet key (tpub/tprv).
        parent_fingerprint: First 4 bytes of parent's Hash160(pubkey), as
            decoded from a serialized key.
        parent_public_key: Parent's compressed pubkey for derived keys; the
            fingerprint is computed from it only when serializing.
    """

    key: bytes
    chain_code: bytes
    depth: int
    child_index: int
    is_private: bool
    testnet: bool = False
    parent_fingerprint: bytes = b"\x00\x00\x00\x00"
    parent_public_key: bytes | None = field(default=None, repr=False, compare=False)

    # -- Serialization -----------------------------------------------------

    def serialize(self) -> bytes:
        """Serialize to the 78-byte BIP32 format."""
        if self.is_private:
            version = _TPRV_VERSION if self.testnet else _XPRV_VERSION
        else:
            version = _TPUB_VERSION if self.testnet else _XPUB_VERSION
        if self.parent_public_key is not None:
            fingerprint = hash160(self.parent_public_key)[:4]
        else:
            fingerprint = self.parent_fingerprint
        data = version
        data += struct.pack("B", self.depth)
        data += fingerprint
        data += struct.pack(">I", self.child_index)
        data += self.chain_code
        if self.is_private:
            data += b"\x00" + self.key
        else:
            data += self.key
        return data

    def to_string(self) -> str:
        """Encode as Base58Check xpub/xprv string."""
        return base58check_encode(self.serialize())

    @classmethod
    def from_string(cls, s: str) -> Self:
        """Decode a Base58Check xpub/xprv string.

        Raises:
            ValueError: On a bad checksum, length, version or key encoding.
        """
        data = base58check_decode(s)
        if len(data) != 78:
            msg = f"Invalid extended key length: {len(data)}"
            raise ValueError(msg)
        version = data[:4]
        if version == _XPRV_VERSION:
            is_private, testnet = True, False
        elif version == _XPUB_VERSION:
            is_private, testnet = False, False
        elif version == _TPRV_VERSION:
            is_private, testnet = True, True
        elif version == _TPUB_VERSION:
            is_private, testnet = False, True
        else:
            msg = f"Unknown version bytes: {version.hex()}"
            raise ValueError(msg)
        if is_private:
            if data[45] != 0x00:
                msg = "Invalid private key padding"
                raise ValueError(msg)
            key = data[46:78]
            if not 0 < int.from_bytes(key, "big") < _CURVE_ORDER:
                msg = "Private key out of range"
                raise ValueError(msg)
        else:
            key = data[45:78]
            decompress_public_key(key)
        return cls(
            key=key,
            chain_code=data[13:45],
            depth=data[4],
            child_index=struct.unpack(">I", data[9:13])[0],
            is_private=is_private,
            testnet=testnet,
            parent_fingerprint=data[5:9],
        )

    # -- Derivation --------------------------------------------------------

    def public_key(self) -> bytes:
        """Return the 33-byte compressed public key."""
        if self.is_private:
            return private_key_to_public_key(self.key)
        return self.key

    def fingerprint(self) -> bytes:
        """First 4 bytes of Hash160(compressed pubkey)."""
        return hash160(self.public_key())[:4]

    def neuter(self) -> ExtendedKey:
        """Convert private extended key to its public counterpart."""
        if not self.is_private:
            return self
        return ExtendedKey(
            key=self.public_key(),
            chain_code=self.chain_code,
            depth=self.depth,
            child_index=self.child_index,
            is_private=False,
            testnet=self.testnet,
            parent_fingerprint=self.parent_fingerprint,
            parent_public_key=self.parent_public_key,
        )

    def derive_child(self, index: int) -> ExtendedKey:
        """Derive a child key at the given index.

        Use ``index >= HARDENED_OFFSET`` for hardened derivation (requires private key).

        Raises:
            ValueError: If hardened derivation is requested on a public key,
                        or if the derived key is invalid.
        """
        if not 0 <= index <= 0xFFFFFFFF:
            msg = f"Child index out of range: {index}"
            raise ValueError(msg)
        hardened = index >= HARDENED_OFFSET
        if hardened and not self.is_private:
            msg = "Cannot derive hardened child from public key"
            raise ValueError(msg)

        parent_pub = self.public_key()
        if hardened:
            data = b"\x00" + self.key + struct.pack(">I", index)
        else:
            data = parent_pub + struct.pack(">I", index)

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        il, ir = hmac_result[:32], hmac_result[32:]

        il_int = int.from_bytes(il, "big")
        if il_int >= _CURVE_ORDER:
            msg = "Derived key is invalid (il >= curve order)"
            raise ValueError(msg)

        if self.is_private:
            key_int = (il_int + int.from_bytes(self.key, "big")) % _CURVE_ORDER
            if key_int == 0:
                msg = "Derived key is invalid (key == 0)"
                raise ValueError(msg)
            child_key = key_int.to_bytes(32, "big")
        else:
            child_point = _pubkey_to_point(self.key) + _CURVE_GEN * il_int
            if child_point == INFINITY:
                msg = "Derived key is invalid (point at infinity)"
                raise ValueError(msg)
            child_key = _point_to_compressed(child_point)

        return ExtendedKey(
            key=child_key,
            chain_code=ir,
            depth=self.depth + 1,
            child_index=index,
            is_private=self.is_private,
            testnet=self.testnet,
            parent_public_key=parent_pub,
        )

    def derive_indices(self, indices: list[int]) -> ExtendedKey:
        """Derive along a sequence of child indices from this key."""
        key = self
        for index in indices:
            key = key.derive_child(index)
        return key

    @classmethod
    def from_seed(cls, seed: bytes, *, testnet: bool = False) -> ExtendedKey:
        """Create a master private extended key from a BIP32 seed.

        Args:
            seed: 16-64 byte seed (typically 64 from a BIP39 mnemonic).
            testnet: If True, create a testnet key (tprv prefix).

        Raises:
            ValueError: If seed length is out of range.
        """
        if not 16 <= len(seed) <= 64:
            msg = f"Seed must be 16-64 bytes, got {len(seed)}"
            raise ValueError(msg)
        hmac_result = hmac.new(_MASTER_HMAC_KEY, seed, hashlib.sha512).digest()
        il, ir = hmac_result[:32], hmac_result[32:]
        il_int = int.from_bytes(il, "big")
        if il_int == 0 or il_int >= _CURVE_ORDER:
            msg = "Invalid seed (derived key out of range)"
            raise ValueError(msg)
        return cls(
            key=il,
            chain_code=ir,
            depth=0,
            child_index=0,
            is_private=True,
            testnet=testnet,
        )
