"""Ownership certificates issued by the registry."""

from __future__ import annotations

from handle_wallet.certs.cert import (
    Cert,
    CertData,
    Witness,
    are_cert_data_equal,
    build_cert,
    extract_cert_data,
    is_cert,
    is_cert_data,
)

__all__ = [
    "Cert",
    "CertData",
    "Witness",
    "are_cert_data_equal",
    "build_cert",
    "extract_cert_data",
    "is_cert",
    "is_cert_data",
]
