"""Registry data models — handle statuses, reserve and claim results.

``HandleStatus`` is a tagged union discriminated on ``status``:

- ``available`` / ``unknown`` / ``invalid`` / ``preallocated`` → :class:`OpenStatus`
- ``reserved`` / ``processing_payment`` → :class:`PendingStatus` (owning script)
- ``taken`` → :class:`TakenStatus` (optional script, optional certificate)

Registry responses are untrusted: anything not matching these shapes is
rejected as a whole.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from handle_wallet.certs import Cert
from handle_wallet.errors import ValidationError

# ---------------------------------------------------------------------------
# Status enum
# ---------------------------------------------------------------------------


class StatusKind(enum.StrEnum):
    """Registry view of a handle.

    Lifecycle: AVAILABLE → RESERVED → PROCESSING_PAYMENT → TAKEN
    """

    AVAILABLE = "available"
    UNKNOWN = "unknown"
    INVALID = "invalid"
    PREALLOCATED = "preallocated"
    RESERVED = "reserved"
    PROCESSING_PAYMENT = "processing_payment"
    TAKEN = "taken"


PENDING_KINDS = frozenset({StatusKind.RESERVED, StatusKind.PROCESSING_PAYMENT})


# ---------------------------------------------------------------------------
# HandleStatus variants
# ---------------------------------------------------------------------------


class _StatusBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    handle: StrictStr

    @property
    def owner_script(self) -> str | None:
        """Script the registry says owns the handle, if any."""
        return None

    @property
    def certificate(self) -> Cert | None:
        return None


class OpenStatus(_StatusBase):
    """No ownership claim exists."""

    status: Literal["available", "unknown", "invalid", "preallocated"]


class PendingStatus(_StatusBase):
    """Held for the owner of ``script_pubkey`` while payment completes."""

    status: Literal["reserved", "processing_payment"]
    script_pubkey: StrictStr

    @property
    def owner_script(self) -> str | None:
        return self.script_pubkey


class TakenStatus(_StatusBase):
    """Owned. A certificate always comes with the owning script."""

    status: Literal["taken"]
    script_pubkey: StrictStr | None = None
    certificate_: Cert | None = Field(default=None, alias="certificate")

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @model_validator(mode="after")
    def _certificate_needs_script(self) -> TakenStatus:
        if self.certificate_ is not None and self.script_pubkey is None:
            msg = "certificate without script_pubkey"
            raise ValueError(msg)
        return self

    @property
    def owner_script(self) -> str | None:
        return self.script_pubkey

    @property
    def certificate(self) -> Cert | None:
        return self.certificate_


HandleStatus = Annotated[OpenStatus | PendingStatus | TakenStatus, Field(discriminator="status")]

_STATUS_ADAPTER: TypeAdapter[OpenStatus | PendingStatus | TakenStatus] = TypeAdapter(HandleStatus)
_STATUS_LIST_ADAPTER: TypeAdapter[list[OpenStatus | PendingStatus | TakenStatus]] = TypeAdapter(
    list[HandleStatus]
)


def parse_handle_status(data: Any) -> OpenStatus | PendingStatus | TakenStatus:
    """Validate one status object.

    Raises:
        ValidationError: If *data* matches no variant.
    """
    try:
        return _STATUS_ADAPTER.validate_python(data)
    except PydanticValidationError as exc:
        msg = f"Invalid handle status: {exc.error_count()} errors"
        raise ValidationError(msg) from exc


def parse_handle_statuses(data: Any) -> list[OpenStatus | PendingStatus | TakenStatus]:
    """Validate a status list; one bad entry rejects the whole list.

    Raises:
        ValidationError: If *data* is not a list of valid statuses.
    """
    try:
        return _STATUS_LIST_ADAPTER.validate_python(data)
    except PydanticValidationError as exc:
        msg = f"Invalid handle status list: {exc.error_count()} errors"
        raise ValidationError(msg) from exc


def unknown_status(handle: str) -> OpenStatus:
    """Placeholder status used whenever the registry cannot be asked."""
    return OpenStatus(handle=handle, status="unknown")


# ---------------------------------------------------------------------------
# Reserve / claim results
# ---------------------------------------------------------------------------


class ReserveResult(BaseModel):
    """Successful ``POST /reserve``: a time-boxed hold awaiting payment.

    All three fields are required; a body missing any of them, or carrying
    ``null`` for one, is rejected as a whole. ``deadline`` is passed through
    to the caller and not enforced here.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    deadline: StrictInt | StrictFloat
    handle_status: HandleStatus
    product_id: StrictStr


class ReserveError(BaseModel):
    """Failed ``POST /reserve``, with the message to show the user."""

    model_config = ConfigDict(frozen=True)

    error: str


class ClaimResult(BaseModel):
    """Outcome of ``POST /claim``: fresh status plus an optional error.

    ``error`` may be absent, but when present it must be a string.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    handle_status: HandleStatus
    error: StrictStr | None = None

    @model_validator(mode="before")
    @classmethod
    def _error_is_text(cls, data: Any) -> Any:
        if isinstance(data, dict) and "error" in data and not isinstance(data["error"], str):
            msg = "error must be a string when present"
            raise ValueError(msg)
        return data

    @property
    def ok(self) -> bool:
        return self.error is None
