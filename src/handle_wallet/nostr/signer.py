"""Nostr event signing — BIP-340 Schnorr via coincurve.

The event id is SHA-256 over the canonical JSON array
``[0, pub, created_at, kind, tags, content]`` (compact separators, no
ASCII escaping, integral floats written as integers); the signature is
a Schnorr signature over the id with the handle's derived private key.
"""

from __future__ import annotations

import json
from typing import Any

from coincurve import PrivateKey, PublicKeyXOnly

from handle_wallet.errors import ValidationError
from handle_wallet.nostr.events import NostrEvent, NostrEventData, parse_event_data
from handle_wallet.utils.crypto import sha256


def _number(value: int | float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def serialize_event(pub: str, data: NostrEventData) -> str:
    """Canonical serialization hashed into the event id."""
    payload: list[Any] = [0, pub, _number(data.created_at), _number(data.kind), data.tags, data.content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def event_id(pub: str, data: NostrEventData) -> str:
    """Hex SHA-256 of the canonical serialization."""
    return sha256(serialize_event(pub, data).encode("utf-8")).hex()


def _private_key(privkey_hex: str) -> PrivateKey:
    try:
        return PrivateKey(bytes.fromhex(privkey_hex))
    except ValueError as exc:
        msg = "Invalid private key"
        raise ValidationError(msg) from exc


def xonly_public_key(privkey_hex: str) -> str:
    """32-byte x-only public key (hex) for a hex private key."""
    return _private_key(privkey_hex).public_key.format(compressed=True)[1:].hex()


def sign_event(
    data: NostrEventData | dict[str, Any],
    privkey_hex: str,
    *,
    aux_rand: bytes | None = None,
) -> NostrEvent:
    """Sign *data* with *privkey_hex*.

    Without *aux_rand* coincurve draws fresh randomness for the nonce;
    the id depends only on the data and key.

    Raises:
        ValidationError: If *data* is malformed or the key is invalid.
    """
    event_data = data if isinstance(data, NostrEventData) else parse_event_data(data)
    key = _private_key(privkey_hex)
    pub = key.public_key.format(compressed=True)[1:].hex()
    eid = event_id(pub, event_data)
    sig = key.sign_schnorr(bytes.fromhex(eid), aux_rand or b"")
    return NostrEvent(
        created_at=event_data.created_at,
        kind=event_data.kind,
        tags=event_data.tags,
        content=event_data.content,
        id=eid,
        pub=pub,
        sig=sig.hex(),
    )


def verify_event(event: NostrEvent) -> bool:
    """Check that the id matches the data and the signature matches the id."""
    if event.id != event_id(event.pub, event):
        return False
    try:
        pub = PublicKeyXOnly(bytes.fromhex(event.pub))
        return pub.verify(bytes.fromhex(event.sig), bytes.fromhex(event.id))
    except ValueError:
        return False
