"""Ownership reconciliation between a registry status and the local script.

The registry is never trusted to assert ownership on its own: a status or
certificate counts only if the script it names equals the script derived
from the locally held path.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from handle_wallet.certs import extract_cert_data, is_cert

if TYPE_CHECKING:
    from handle_wallet.certs import CertData
    from handle_wallet.registry.models import OpenStatus, PendingStatus, TakenStatus

logger = logging.getLogger(__name__)


class Ownership(enum.StrEnum):
    """Whether the registry's owner is this identity."""

    OWNED = "owned"
    FOREIGN = "foreign"
    NONE = "none"


@dataclass(frozen=True)
class Reconciliation:
    ownership: Ownership
    cert_data: CertData | None = None


def reconcile(
    status: OpenStatus | PendingStatus | TakenStatus,
    expected_script: str,
) -> Reconciliation:
    """Compare *status* with *expected_script*.

    Returns the certificate body to attach only when the owning script,
    and the script and handle inside the certificate, all match.
    """
    owner = status.owner_script
    if owner is None:
        return Reconciliation(Ownership.NONE)
    if owner != expected_script:
        return Reconciliation(Ownership.FOREIGN)

    cert = status.certificate
    if cert is None:
        return Reconciliation(Ownership.OWNED)
    if not is_cert(cert) or cert.script_pubkey != expected_script or cert.handle != status.handle:
        logger.warning("Ignoring certificate for %s that names another handle or script", status.handle)
        return Reconciliation(Ownership.OWNED)
    return Reconciliation(Ownership.OWNED, extract_cert_data(cert))
