"""Handle registry — HTTP client and response models."""

from __future__ import annotations

from handle_wallet.registry.client import HandleRegistryClient
from handle_wallet.registry.models import (
    ClaimResult,
    HandleStatus,
    OpenStatus,
    PendingStatus,
    ReserveError,
    ReserveResult,
    StatusKind,
    TakenStatus,
    parse_handle_status,
)

__all__ = [
    "ClaimResult",
    "HandleRegistryClient",
    "HandleStatus",
    "OpenStatus",
    "PendingStatus",
    "ReserveError",
    "ReserveResult",
    "StatusKind",
    "TakenStatus",
    "parse_handle_status",
]
