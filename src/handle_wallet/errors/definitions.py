"""User-facing messages and pre-defined error instances."""

from __future__ import annotations

from handle_wallet.errors.wallet_errors import KeystoreError

# -- Registry --------------------------------------------------------------

ERR_NETWORK = "Network error"
ERR_NO_PURCHASE_TOKEN = "No purchase token received"
ERR_NO_PRODUCT = "Reservation did not name a product to purchase"

# -- Ownership -------------------------------------------------------------

MSG_TAKEN_BY_OTHER = "Handle is taken, but it associated with a different public key."
MSG_RESERVED_BY_OTHER = "Handle is currently reserved by another user."
MSG_CERT_PENDING = "Handle successfully claimed. Certificate is being generated."

# -- Keystore --------------------------------------------------------------

ErrMissingPublicKey = KeystoreError("Cannot save keystore without a master public key")
ErrMissingHandles = KeystoreError("Cannot save keystore without handles")
ErrNotSetUp = KeystoreError("Keystore is not set up")
