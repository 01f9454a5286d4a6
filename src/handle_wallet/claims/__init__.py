"""Handle claims — reconciliation, payment and the per-handle state machine."""

from __future__ import annotations

from handle_wallet.claims.machine import ClaimSnapshot, ClaimStateMachine
from handle_wallet.claims.purchase import PurchaseProof, PurchaseProvider, TestPurchaseProvider
from handle_wallet.claims.reconcile import Ownership, Reconciliation, reconcile

__all__ = [
    "ClaimSnapshot",
    "ClaimStateMachine",
    "Ownership",
    "PurchaseProof",
    "PurchaseProvider",
    "Reconciliation",
    "TestPurchaseProvider",
    "reconcile",
]
