"""Nostr events signed with handle keys."""

from __future__ import annotations

from handle_wallet.nostr.events import (
    NostrEvent,
    NostrEventData,
    is_nostr_event,
    is_nostr_event_data,
    parse_event,
    parse_event_data,
)
from handle_wallet.nostr.signer import event_id, sign_event, verify_event, xonly_public_key

__all__ = [
    "NostrEvent",
    "NostrEventData",
    "event_id",
    "is_nostr_event",
    "is_nostr_event_data",
    "parse_event",
    "parse_event_data",
    "sign_event",
    "verify_event",
    "xonly_public_key",
]
