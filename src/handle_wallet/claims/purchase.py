"""Payment proof providers for the claim step."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Any, Protocol

from handle_wallet.config.settings import PaymentMethod


@dataclass(frozen=True)
class PurchaseProof:
    """Opaque purchase token plus the tag telling the registry how to check it."""

    token: str
    method: PaymentMethod
    receipt: Any = None

    def __repr__(self) -> str:
        return f"PurchaseProof(method={self.method!s}, token=<redacted>)"


class PurchaseProvider(Protocol):
    """Obtains payment for a registry product.

    ``purchase`` returns None when the user cancels and raises
    :class:`~handle_wallet.errors.PurchaseError` on failure. ``finish``
    acknowledges a purchase once the handle is taken.
    """

    async def purchase(self, product_id: str) -> PurchaseProof | None: ...

    async def finish(self, proof: PurchaseProof) -> None: ...


def make_test_purchase_token() -> str:
    """Token format the registry accepts with payment method ``test``."""
    return f"test_valid_purchase_{int(time.time() * 1000)}.{secrets.token_hex(6)}"


class TestPurchaseProvider:
    """Free purchases for testnet and development registries."""

    __test__ = False  # not a pytest test class

    def __init__(self) -> None:
        self.finished: list[PurchaseProof] = []

    async def purchase(self, product_id: str) -> PurchaseProof | None:  # noqa: ARG002, ASYNC910
        return PurchaseProof(token=make_test_purchase_token(), method=PaymentMethod.TEST)

    async def finish(self, proof: PurchaseProof) -> None:  # noqa: ASYNC910
        self.finished.append(proof)
