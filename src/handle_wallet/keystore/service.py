"""Keystore service — handle path allocation and persistence.

All reads of the mutable state that feed a write, and the write itself,
happen under one ``asyncio.Lock``; the in-memory snapshot is replaced only
after the store accepted the new blob. Path allocation therefore always
scans the latest persisted snapshot and two handles in one network can
never receive the same path.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from handle_wallet.certs import CertData, are_cert_data_equal
from handle_wallet.errors.definitions import ErrMissingHandles, ErrMissingPublicKey, ErrNotSetUp
from handle_wallet.keys.derivation import master_public_from_private
from handle_wallet.keystore.models import HandleRecord, HandlesMap, KeystoreState

if TYPE_CHECKING:
    from collections.abc import Mapping

    from handle_wallet.config.settings import Network
    from handle_wallet.secure.base import SecretStore
    from handle_wallet.storage.client import GeneralStore

logger = logging.getLogger(__name__)

_CANONICAL_INDEX_RE = re.compile(r"0|[1-9][0-9]*")


def next_handle_path(prefix: str, handles_map: Mapping[str, HandleRecord], floor: int = 0) -> str:
    """Path one past the highest index allocated under *prefix*.

    Paths outside the prefix, or whose trailing segment is not a canonical
    decimal integer, are ignored. The index is never below *floor*, and
    gaps left by removed handles are never refilled.
    """
    max_index = floor - 1
    for record in handles_map.values():
        if not record.path.startswith(prefix):
            continue
        tail = record.path[len(prefix) :]
        if _CANONICAL_INDEX_RE.fullmatch(tail) is None:
            continue
        max_index = max(max_index, int(tail))
    return f"{prefix}{max_index + 1}"


class Keystore:
    """Master public key and handle records, mirrored to durable storage.

    Usage::

        keystore = Keystore(store, secrets)
        await keystore.load()
        await keystore.setup(xprv)
        await keystore.create_handle(Network.MAINNET, "alice")
    """

    def __init__(
        self,
        store: GeneralStore,
        secrets: SecretStore,
        *,
        storage_key: str = "keystore",
        secret_name: str = "xprv",
    ) -> None:
        """Initialize the keystore.

        Args:
            store: General store holding the keystore JSON blob.
            secrets: Secure store holding the master private key.
            storage_key: Key of the blob in *store*.
            secret_name: Name of the master private key in *secrets*.
        """
        self._store = store
        self._secrets = secrets
        self._storage_key = storage_key
        self._secret_name = secret_name
        self._state: KeystoreState | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def is_setup(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> KeystoreState | None:
        """Current snapshot (immutable)."""
        return self._state

    @property
    def master_public_key(self) -> str | None:
        return self._state.master_public_key if self._state is not None else None

    def handles(self, network: Network) -> HandlesMap:
        """Copy of the handles map for *network*."""
        if self._state is None:
            return {}
        return dict(self._state.handles_for(network))

    def get_handle(self, network: Network, name: str) -> HandleRecord | None:
        if self._state is None:
            return None
        return self._state.handles_for(network).get(name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> KeystoreState | None:
        """Read the persisted keystore.

        A blob that fails validation is treated as absent.

        Raises:
            StorageError: If the store itself fails.
        """
        async with self._lock:
            text = await self._store.get_item(self._storage_key)
            self._state = KeystoreState.parse_json(text) if text else None
            if self._state is not None:
                logger.debug(
                    "Loaded keystore with %d networks",
                    len(self._state.handles),
                )
            return self._state

    async def setup(
        self,
        master_xprv: str,
        initial_handles: Mapping[Network, Mapping[str, HandleRecord]] | None = None,
    ) -> None:
        """Store *master_xprv* securely and write a keystore for its xpub.

        Calling this again overwrites the previous key material. If the
        keystore write fails, the secure store is rolled back to the key it
        held before, so the stored xprv and xpub never diverge.

        Raises:
            DerivationError: If *master_xprv* is not a private extended key.
            StorageError: If either store fails.
        """
        master_xpub = master_public_from_private(master_xprv)
        handles = {net: dict(records) for net, records in (initial_handles or {}).items()}
        state = KeystoreState(master_public_key=master_xpub, handles=handles)
        async with self._lock:
            previous = await self._secrets.get_secret(self._secret_name)
            await self._secrets.set_secret(self._secret_name, master_xprv)
            try:
                await self._save(state)
            except Exception:
                logger.warning("Keystore write failed during setup, restoring the previous master key")
                if previous is None:
                    await self._secrets.delete_secret(self._secret_name)
                else:
                    await self._secrets.set_secret(self._secret_name, previous)
                raise
        logger.info("Keystore set up")

    async def reset(self) -> None:
        """Remove the persisted keystore and the master private key."""
        async with self._lock:
            await self._secrets.delete_secret(self._secret_name)
            await self._store.remove_item(self._storage_key)
            self._state = None
        logger.info("Keystore reset")

    async def get_master_private_key(self) -> str | None:
        """Fetch the master xprv from the secure store.

        Raises:
            StorageError: Propagated from the secure store, including
                :class:`SecureStoreLockedError` while it is gated.
        """
        return await self._secrets.get_secret(self._secret_name)

    # ------------------------------------------------------------------
    # Handle operations
    # ------------------------------------------------------------------

    async def create_handle(self, network: Network, name: str) -> HandleRecord:
        """Allocate the next path in *network* for *name*.

        Returns the existing record unchanged if *name* is already present.
        """
        async with self._lock:
            state = self._require_state()
            handles_map = state.handles_for(network)
            existing = handles_map.get(name)
            if existing is not None:
                return existing
            prefix = network.derivation_prefix
            record = HandleRecord(path=next_handle_path(prefix, handles_map, state.index_floor(network)))
            index = int(record.path[len(prefix) :])
            updated = _with_handles(state, network, {**handles_map, name: record})
            await self._save(updated.model_copy(update={"next_index": {**state.next_index, network: index + 1}}))
        logger.info("Allocated %s for %s on %s", record.path, name, network)
        return record

    async def remove_handle(self, network: Network, name: str) -> None:
        """Delete *name* from *network*. Its path is never handed out again."""
        async with self._lock:
            state = self._require_state()
            handles_map = state.handles_for(network)
            if name not in handles_map:
                return
            remaining = {k: v for k, v in handles_map.items() if k != name}
            await self._save(_with_handles(state, network, remaining))
        logger.info("Removed %s from %s", name, network)

    async def set_handle_cert_data(
        self,
        network: Network,
        name: str,
        cert: CertData | None,
    ) -> None:
        """Attach (or with None, clear) the certificate of *name*.

        No-op when the handle is unknown or the certificate is unchanged.
        """
        async with self._lock:
            state = self._require_state()
            handles_map = state.handles_for(network)
            record = handles_map.get(name)
            if record is None:
                return
            if record.cert is None and cert is None:
                return
            if record.cert is not None and cert is not None and are_cert_data_equal(record.cert, cert):
                return
            updated = record.model_copy(update={"cert": cert})
            await self._save(_with_handles(state, network, {**handles_map, name: updated}))
        logger.info("%s certificate for %s on %s", "Stored" if cert else "Cleared", name, network)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_state(self) -> KeystoreState:
        if self._state is None:
            raise ErrNotSetUp
        return self._state

    async def _save(self, state: KeystoreState | None) -> None:
        """Persist *state*, then make it the current snapshot. Lock must be held."""
        if state is None or not state.master_public_key:
            raise ErrMissingPublicKey
        if state.handles is None:
            raise ErrMissingHandles
        await self._store.set_item(self._storage_key, state.to_json())
        self._state = state


def _with_handles(state: KeystoreState, network: Network, handles_map: HandlesMap) -> KeystoreState:
    return KeystoreState(
        master_public_key=state.master_public_key,
        handles={**state.handles, network: handles_map},
        next_index=state.next_index,
    )
