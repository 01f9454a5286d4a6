"""HandleWalletEngine — central client owning storage, keystore and registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from handle_wallet.errors import KeystoreError

if TYPE_CHECKING:
    from handle_wallet.claims.machine import ClaimStateMachine
    from handle_wallet.config.settings import AppConfig, Network
    from handle_wallet.keystore import Keystore
    from handle_wallet.nostr.events import NostrEvent, NostrEventData
    from handle_wallet.registry.client import HandleRegistryClient
    from handle_wallet.secure.base import SecretStore
    from handle_wallet.storage.client import StorageClient
    from handle_wallet.taskmanager.manager import TaskManager

logger = logging.getLogger(__name__)

_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class HandleWalletEngine:
    """Wires the configured stores, keystore, registry client and scheduler.

    Usage::

        engine = HandleWalletEngine(AppConfig())
        await engine.initialize()
        try:
            machine = engine.claim_machine(Network.TESTNET4, "alice@bitcoin")
            await machine.poll()
        finally:
            await engine.close()
    """

    def __init__(self, config: AppConfig) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
        """
        self._config = config
        self._initialized = False

        self._storage: StorageClient | None = None
        self._secrets: SecretStore | None = None
        self._keystore: Keystore | None = None
        self._registry: HandleRegistryClient | None = None
        self._task_manager: TaskManager | None = None

    async def initialize(self) -> None:
        """Open storage, load the keystore and connect the registry client.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from handle_wallet.keystore import Keystore
        from handle_wallet.registry.client import HandleRegistryClient
        from handle_wallet.secure import create_secret_store
        from handle_wallet.storage.client import StorageClient
        from handle_wallet.taskmanager.manager import TaskManager

        self._storage = StorageClient(self._config.storage)
        await self._storage.connect()

        self._secrets = create_secret_store(self._config.secure, self._storage)
        self._keystore = Keystore(
            self._storage,
            self._secrets,
            storage_key=self._config.storage.keystore_key,
            secret_name=self._config.secure.secret_name,
        )
        await self._keystore.load()

        self._registry = HandleRegistryClient(self._config.registry)
        await self._registry.connect()

        self._task_manager = TaskManager()
        await self._task_manager.start()

        self._initialized = True
        logger.info("Handle wallet engine initialized")

    async def close(self) -> None:
        """Stop background polls and release connections (idempotent)."""
        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None
        if self._registry is not None:
            await self._registry.close()
            self._registry = None
        if self._storage is not None:
            await self._storage.close()
            self._storage = None
        self._secrets = None
        self._keystore = None
        self._initialized = False
        logger.info("Handle wallet engine shut down")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def keystore(self) -> Keystore:
        self._ensure_initialized()
        assert self._keystore is not None
        return self._keystore

    @property
    def registry(self) -> HandleRegistryClient:
        self._ensure_initialized()
        assert self._registry is not None
        return self._registry

    @property
    def secrets(self) -> SecretStore:
        self._ensure_initialized()
        assert self._secrets is not None
        return self._secrets

    @property
    def task_manager(self) -> TaskManager:
        self._ensure_initialized()
        assert self._task_manager is not None
        return self._task_manager

    async def unlock(self, passphrase: str) -> None:
        """Open the secure store gate (no-op for the plain variant)."""
        await self.secrets.unlock(passphrase)

    def claim_machine(self, network: Network, handle: str) -> ClaimStateMachine:
        """State machine for *handle*, polling on the engine's scheduler."""
        from handle_wallet.claims.machine import ClaimStateMachine

        return ClaimStateMachine(
            self.keystore,
            self.registry,
            network,
            handle,
            task_manager=self.task_manager,
            poll_interval=self._config.claim.poll_interval,
        )

    async def sign_event(
        self,
        network: Network,
        handle: str,
        data: NostrEventData | dict[str, Any],
    ) -> NostrEvent:
        """Sign a Nostr event with the key derived for *handle*.

        Raises:
            KeystoreError: If the handle is unknown or the master private
                key is not available.
            StorageError: Propagated from the secure store.
            ValidationError: If *data* is malformed.
        """
        from handle_wallet.keys.derivation import derive_private
        from handle_wallet.nostr.events import parse_event_data
        from handle_wallet.nostr.signer import sign_event

        event_data = parse_event_data(data) if isinstance(data, dict) else data
        record = self.keystore.get_handle(network, handle)
        if record is None:
            msg = f"Handle {handle!r} is not in the keystore for {network}"
            raise KeystoreError(msg)
        master_xprv = await self.keystore.get_master_private_key()
        if master_xprv is None:
            msg = "Master private key is not available"
            raise KeystoreError(msg)
        return sign_event(event_data, derive_private(master_xprv, record.path))

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
