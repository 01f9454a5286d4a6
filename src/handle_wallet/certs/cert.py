"""Certificate shapes and the helpers the wallet relies on.

The wallet never verifies a certificate cryptographically. It needs to
recognise a well-formed one, compare two, and move between the
registry's full form (:class:`Cert`) and the handle-independent part it
stores locally (:class:`CertData`).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic import ValidationError as PydanticValidationError


class Witness(BaseModel):
    """Proof material; ``data`` is shown to the user as-is."""

    model_config = ConfigDict(extra="allow")

    type: StrictStr
    data: StrictStr


class CertData(BaseModel):
    """Certificate body stored in the keystore, without handle or script."""

    model_config = ConfigDict(extra="allow")

    witness: Witness


class Cert(CertData):
    """Certificate as served by the registry and exported to files."""

    handle: StrictStr
    script_pubkey: StrictStr


def is_cert_data(obj: object) -> bool:
    """Structural check for a stored certificate body."""
    try:
        CertData.model_validate(obj)
    except PydanticValidationError:
        return False
    return True


def is_cert(obj: object) -> bool:
    """Structural check for a full certificate."""
    try:
        Cert.model_validate(obj)
    except PydanticValidationError:
        return False
    return True


def build_cert(cert_data: CertData, handle: str, script_pubkey: str) -> Cert:
    """Re-attach *handle* and *script_pubkey* to a stored certificate body."""
    body = cert_data.model_dump(mode="json")
    body.pop("handle", None)
    body.pop("script_pubkey", None)
    return Cert.model_validate({"handle": handle, "script_pubkey": script_pubkey, **body})


def extract_cert_data(cert: Cert) -> CertData:
    """Strip the handle and script from *cert*."""
    body: dict[str, Any] = cert.model_dump(mode="json", exclude={"handle", "script_pubkey"})
    return CertData.model_validate(body)


def are_cert_data_equal(a: CertData, b: CertData) -> bool:
    """Compare two certificate bodies field by field."""
    return a.model_dump(mode="json") == b.model_dump(mode="json")
