"""Exportable documents: claim requests and certificates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from handle_wallet.certs import build_cert

if TYPE_CHECKING:
    from handle_wallet.certs import CertData


def build_request_document(handle: str, script_pubkey: str) -> dict[str, Any]:
    """Offline claim request, handed to the registry out of band."""
    return {"handle": handle, "script_pubkey": script_pubkey}


def build_certificate_document(cert_data: CertData, handle: str, script_pubkey: str) -> dict[str, Any]:
    """Full certificate for *handle* as a JSON-ready dict."""
    return build_cert(cert_data, handle, script_pubkey).model_dump(mode="json")


def request_filename(handle: str) -> str:
    return f"{handle}.req.json"


def certificate_filename(handle: str) -> str:
    return f"{handle}.cert.json"


def split_handle(handle: str) -> tuple[str | None, str]:
    """Split ``sub@space`` into ``("sub", "@space")``; bare names have no sub part."""
    parts = handle.split("@")
    if len(parts) == 2:
        return parts[0], f"@{parts[1]}"
    return None, handle
