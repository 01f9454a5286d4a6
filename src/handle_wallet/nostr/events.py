"""Nostr event shapes (Pydantic models) and structural predicates.

Externally sourced event data is validated before it is signed or
accepted: numeric ``created_at`` and ``kind``, ``tags`` as a list of
string lists, string ``content``; signed events add string ``id``,
``pub`` and ``sig``. Booleans are not numbers here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from handle_wallet.errors import ValidationError


class NostrEventData(BaseModel):
    """Unsigned event fields."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    created_at: StrictInt | StrictFloat
    kind: StrictInt | StrictFloat
    tags: list[list[StrictStr]]
    content: StrictStr


class NostrEvent(NostrEventData):
    """Signed event: the data plus id, x-only public key and signature."""

    id: StrictStr
    pub: StrictStr
    sig: StrictStr

    def data(self) -> NostrEventData:
        """The unsigned fields of this event."""
        return NostrEventData(
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
        )


def parse_event_data(obj: Any) -> NostrEventData:
    """Validate unsigned event data.

    Raises:
        ValidationError: If *obj* has the wrong shape.
    """
    try:
        return NostrEventData.model_validate(obj)
    except PydanticValidationError as exc:
        msg = f"Invalid Nostr event data: {exc.error_count()} errors"
        raise ValidationError(msg) from exc


def parse_event(obj: Any) -> NostrEvent:
    """Validate a signed event.

    Raises:
        ValidationError: If *obj* has the wrong shape.
    """
    try:
        return NostrEvent.model_validate(obj)
    except PydanticValidationError as exc:
        msg = f"Invalid Nostr event: {exc.error_count()} errors"
        raise ValidationError(msg) from exc


def is_nostr_event_data(obj: Any) -> bool:
    try:
        parse_event_data(obj)
    except ValidationError:
        return False
    return True


def is_nostr_event(obj: Any) -> bool:
    try:
        parse_event(obj)
    except ValidationError:
        return False
    return True
