"""WalletError — base exception class and the per-concern subclasses."""

from __future__ import annotations


class WalletError(Exception):
    """Base error for all handle-wallet operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
    """

    def __init__(self, message: str, *, code: str = "wallet-error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class DerivationError(WalletError):
    """Key material could not produce a key at the requested path."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="derivation-error")


class StorageError(WalletError):
    """Read or write failure in the general or secure store."""

    def __init__(self, message: str, *, code: str = "storage-error") -> None:
        super().__init__(message, code=code)


class SecureStoreLockedError(StorageError):
    """The secure store is gated and has not been unlocked yet."""

    def __init__(self, message: str = "secure store is locked") -> None:
        super().__init__(message, code="secure-store-locked")


class KeystoreError(WalletError):
    """Keystore invariant violation (e.g. saving without a master public key)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="keystore-error")


class RegistryError(WalletError):
    """Error reported by (or while talking to) the handle registry.

    The message is shown to the user verbatim.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, code="registry-error")
        self.status_code = status_code


class ValidationError(WalletError):
    """Untrusted JSON did not match the expected shape."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="validation-error")


class PurchaseError(WalletError):
    """The payment step failed before a purchase token was obtained."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="purchase-error")
