"""Engine — lifecycle owner for the wallet's services."""

from __future__ import annotations

from handle_wallet.engine.client import HandleWalletEngine

__all__ = ["HandleWalletEngine"]
