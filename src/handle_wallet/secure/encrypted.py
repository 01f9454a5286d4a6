"""Passphrase-gated secret store — Fernet encryption, PBKDF2 key derivation.

The store file is a JSON document::

    {"salt": "<base64>", "secrets": {"<name>": "<fernet token>"}}

Until :meth:`EncryptedSecretStore.unlock` succeeds every operation raises
:class:`SecureStoreLockedError`; the rest of the wallet keeps working from
the public key alone.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from handle_wallet.errors import SecureStoreLockedError, StorageError
from handle_wallet.storage.file import atomic_write

logger = logging.getLogger(__name__)

_SALT_BYTES = 16


def derive_fernet_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    """PBKDF2-HMAC-SHA256 → urlsafe base64 Fernet key."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class EncryptedSecretStore:
    """Secrets encrypted at rest, readable only after ``unlock()``."""

    def __init__(self, path: str | Path, *, iterations: int = 390_000) -> None:
        self._path = Path(path)
        self._iterations = iterations
        self._fernet: Fernet | None = None
        self._salt: bytes | None = None
        self._tokens: dict[str, str] = {}

    @property
    def is_unlocked(self) -> bool:
        return self._fernet is not None

    async def unlock(self, passphrase: str) -> None:
        """Derive the encryption key and open the store.

        A missing file starts a new store with a fresh salt.

        Raises:
            StorageError: If the file is unreadable or the passphrase does
                not decrypt the existing secrets.
        """
        salt, tokens = await asyncio.to_thread(self._read)
        if salt is None:
            salt = os.urandom(_SALT_BYTES)
        key = await asyncio.to_thread(derive_fernet_key, passphrase, salt, self._iterations)
        fernet = Fernet(key)
        for token in tokens.values():
            try:
                fernet.decrypt(token.encode("ascii"))
            except InvalidToken as exc:
                msg = "Incorrect passphrase for secure store"
                raise StorageError(msg) from exc
        self._salt = salt
        self._tokens = tokens
        self._fernet = fernet
        logger.debug("Secure store %s unlocked", self._path)

    def lock(self) -> None:
        """Forget the derived key."""
        self._fernet = None
        self._tokens = {}

    async def get_secret(self, name: str) -> str | None:
        fernet = self._ensure_unlocked()
        token = self._tokens.get(name)
        if token is None:
            return None
        try:
            return fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            msg = f"Secret {name!r} could not be decrypted"
            raise StorageError(msg) from exc

    async def set_secret(self, name: str, value: str) -> None:
        fernet = self._ensure_unlocked()
        token = fernet.encrypt(value.encode("utf-8")).decode("ascii")
        updated = {**self._tokens, name: token}
        await self._write(updated)
        self._tokens = updated

    async def delete_secret(self, name: str) -> None:
        self._ensure_unlocked()
        if name not in self._tokens:
            return
        updated = {k: v for k, v in self._tokens.items() if k != name}
        await self._write(updated)
        self._tokens = updated

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_unlocked(self) -> Fernet:
        if self._fernet is None:
            raise SecureStoreLockedError
        return self._fernet

    def _read(self) -> tuple[bytes | None, dict[str, str]]:
        if not self._path.exists():
            return None, {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            salt = base64.b64decode(data["salt"])
            secrets = data.get("secrets", {})
        except (OSError, ValueError, KeyError, TypeError) as exc:
            msg = f"Secure store file {self._path} is unreadable: {exc}"
            raise StorageError(msg) from exc
        if not isinstance(secrets, dict):
            msg = f"Secure store file {self._path} is malformed"
            raise StorageError(msg)
        return salt, {k: v for k, v in secrets.items() if isinstance(v, str)}

    async def _write(self, tokens: dict[str, str]) -> None:
        assert self._salt is not None
        document = {
            "salt": base64.b64encode(self._salt).decode("ascii"),
            "secrets": tokens,
        }
        try:
            await asyncio.to_thread(atomic_write, self._path, json.dumps(document, indent=2))
        except OSError as exc:
            msg = f"Failed to write secure store {self._path}: {exc}"
            raise StorageError(msg) from exc
