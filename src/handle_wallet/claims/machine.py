"""Claim state machine — one handle on one network.

The state is re-derived from the latest registry answer on every poll;
the only local-only state is the ``purchasing`` flag while a buy is in
flight. Flow::

    poll() ─► reserve() ─► PurchaseProvider.purchase() ─► claim() ─► taken
                 │ error            │ error/cancel           │ error
                 └──────────────────┴────────────────────────┴─► poll()

After any failure the true state is recovered by asking the registry
again; a payment may have gone through server-side even if the
client-visible call failed.

While the registry reports ``reserved`` or ``processing_payment`` and the
caller is watching (``start_polling`` or ``async with``), the handle is
re-polled every ``poll_interval`` seconds.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from handle_wallet.claims.reconcile import Ownership, reconcile
from handle_wallet.errors import KeystoreError, PurchaseError
from handle_wallet.errors.definitions import (
    ERR_NO_PRODUCT,
    ERR_NO_PURCHASE_TOKEN,
    MSG_CERT_PENDING,
    MSG_RESERVED_BY_OTHER,
    MSG_TAKEN_BY_OTHER,
)
from handle_wallet.keys.script import script_for_path
from handle_wallet.registry.models import PENDING_KINDS, ReserveError, StatusKind
from handle_wallet.taskmanager import CronJob, TaskManager

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType
    from typing import Self

    from handle_wallet.certs import CertData
    from handle_wallet.claims.purchase import PurchaseProvider
    from handle_wallet.config.settings import Network, PaymentMethod
    from handle_wallet.keystore import Keystore
    from handle_wallet.registry.client import HandleRegistryClient
    from handle_wallet.registry.models import (
        ClaimResult,
        OpenStatus,
        PendingStatus,
        ReserveResult,
        TakenStatus,
    )

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0

_REMOVABLE_KINDS = frozenset(
    {StatusKind.AVAILABLE, StatusKind.PREALLOCATED, StatusKind.INVALID, StatusKind.UNKNOWN}
)


@dataclass(frozen=True)
class ClaimSnapshot:
    """What a caller needs to render one handle.

    Attributes:
        status: Latest registry status, None before the first poll.
        ownership: Result of comparing the status with the local script.
        cert: Locally stored certificate, withheld on an owner mismatch.
        error: Last reserve/claim/purchase error, shown verbatim.
        deadline: Reservation deadline as returned by the registry.
        product_id: Product to purchase for the current reservation.
        purchasing: A buy is in flight.
    """

    status: OpenStatus | PendingStatus | TakenStatus | None = None
    ownership: Ownership = Ownership.NONE
    cert: CertData | None = None
    error: str | None = None
    deadline: int | float | None = None
    product_id: str | None = None
    purchasing: bool = False

    @property
    def kind(self) -> StatusKind | None:
        return StatusKind(self.status.status) if self.status is not None else None

    @property
    def is_pending(self) -> bool:
        """Registry holds the handle while payment completes."""
        return self.kind in PENDING_KINDS

    @property
    def is_processing(self) -> bool:
        """Our own reservation is awaiting payment."""
        return self.ownership == Ownership.OWNED and self.is_pending

    @property
    def can_buy(self) -> bool:
        return self.kind == StatusKind.AVAILABLE and not self.purchasing

    @property
    def can_remove(self) -> bool:
        return self.ownership == Ownership.FOREIGN or self.kind in _REMOVABLE_KINDS

    @property
    def message(self) -> str | None:
        """User-facing message, errors first."""
        if self.error:
            return self.error
        if self.ownership == Ownership.FOREIGN:
            return MSG_TAKEN_BY_OTHER if self.kind == StatusKind.TAKEN else MSG_RESERVED_BY_OTHER
        if self.kind == StatusKind.TAKEN and self.ownership == Ownership.OWNED and self.cert is None:
            return MSG_CERT_PENDING
        return None


class ClaimStateMachine:
    """Drives reserve → pay → claim for one handle and tracks its status.

    Usage::

        machine = ClaimStateMachine(keystore, registry, Network.MAINNET, "alice@bitcoin")
        async with machine:
            snapshot = await machine.buy(TestPurchaseProvider())
    """

    def __init__(
        self,
        keystore: Keystore,
        registry: HandleRegistryClient,
        network: Network,
        handle: str,
        *,
        task_manager: TaskManager | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clear_foreign_certificates: bool = False,
    ) -> None:
        """Initialize the state machine.

        Args:
            keystore: Keystore holding the handle's path.
            registry: Registry client.
            network: Network the handle lives on.
            handle: Handle name.
            task_manager: Scheduler for periodic polls; a private one is
                created when omitted.
            poll_interval: Seconds between polls while pending.
            clear_foreign_certificates: Also drop the stored certificate
                when the registry names a different owner. By default the
                keystore is left untouched and the certificate is only
                withheld from snapshots.
        """
        self._keystore = keystore
        self._registry = registry
        self._network = network
        self._handle = handle
        self._owns_task_manager = task_manager is None
        self._tasks = task_manager if task_manager is not None else TaskManager()
        self._poll_interval = poll_interval
        self._clear_foreign = clear_foreign_certificates
        self._snapshot = ClaimSnapshot()
        self._listeners: list[Callable[[ClaimSnapshot], None]] = []
        self._watching = False

    @property
    def network(self) -> Network:
        return self._network

    @property
    def handle(self) -> str:
        return self._handle

    @property
    def snapshot(self) -> ClaimSnapshot:
        return self._snapshot

    @property
    def job_name(self) -> str:
        return f"poll:{self._network}:{self._handle}"

    @property
    def is_polling(self) -> bool:
        return self._tasks.has_job(self.job_name)

    def subscribe(self, listener: Callable[[ClaimSnapshot], None]) -> Callable[[], None]:
        """Call *listener* with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def expected_script(self) -> str:
        """Script derived from the handle's stored path.

        Raises:
            KeystoreError: If the keystore is not set up or lacks the handle.
            DerivationError: If the key cannot be derived.
        """
        master_xpub = self._keystore.master_public_key
        record = self._keystore.get_handle(self._network, self._handle)
        if master_xpub is None or record is None:
            msg = f"Handle {self._handle!r} is not in the keystore for {self._network}"
            raise KeystoreError(msg)
        return script_for_path(master_xpub, record.path)

    # ------------------------------------------------------------------
    # Registry round trips
    # ------------------------------------------------------------------

    async def poll(self) -> ClaimSnapshot:
        """Fetch the current status and reconcile it."""
        status = await self._registry.fetch_handle_status(self._network, self._handle)
        await self._apply(status)
        return self._snapshot

    async def reserve(self) -> ReserveResult | ReserveError:
        """Reserve the handle for the expected script.

        On error the message is kept on the snapshot and the registry is
        polled to recover the true state.
        """
        self._update(error=None)
        result = await self._registry.reserve_handle(self._network, self._handle, self.expected_script())
        if isinstance(result, ReserveError):
            self._update(error=result.error)
            await self.poll()
            return result
        self._update(deadline=result.deadline, product_id=result.product_id)
        await self._apply(result.handle_status)
        return result

    async def claim(self, purchase_token: str, payment_method: PaymentMethod) -> ClaimResult:
        """Submit payment proof for the handle and reconcile the answer."""
        result = await self._registry.claim_handle(
            self._network,
            self._handle,
            self.expected_script(),
            purchase_token,
            payment_method,
        )
        if result.error is not None:
            self._update(error=result.error)
            await self.poll()
            return result
        await self._apply(result.handle_status)
        return result

    async def buy(self, provider: PurchaseProvider) -> ClaimSnapshot:
        """Reserve, pay through *provider*, then claim.

        The purchase is acknowledged with ``provider.finish`` only once the
        registry reports the handle as taken.
        """
        self._update(purchasing=True, error=None)
        try:
            await self._buy(provider)
        finally:
            self._update(purchasing=False)
        return self._snapshot

    async def _buy(self, provider: PurchaseProvider) -> None:
        reservation = await self.reserve()
        if isinstance(reservation, ReserveError):
            return
        if not reservation.product_id:
            self._update(error=ERR_NO_PRODUCT)
            return

        try:
            proof = await provider.purchase(reservation.product_id)
        except PurchaseError as exc:
            self._update(error=f"Failed purchase: {exc.message}")
            await self.poll()
            return
        if proof is None:
            logger.info("Purchase of %s cancelled", self._handle)
            await self.poll()
            return
        if not proof.token:
            self._update(error=ERR_NO_PURCHASE_TOKEN)
            return

        result = await self.claim(proof.token, proof.method)
        if result.error is None and result.handle_status.status == StatusKind.TAKEN:
            await provider.finish(proof)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def start_polling(self) -> None:
        """Watch the handle: poll periodically while it is pending."""
        self._watching = True
        if self._owns_task_manager:
            await self._tasks.start()
        await self._sync_polling()

    async def stop_polling(self) -> None:
        """Stop watching and cancel any scheduled poll."""
        self._watching = False
        await self._tasks.unregister(self.job_name)
        if self._owns_task_manager:
            await self._tasks.stop()

    async def __aenter__(self) -> Self:
        await self.start_polling()
        await self.poll()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop_polling()

    async def _sync_polling(self) -> None:
        should_poll = self._watching and self._snapshot.is_pending
        if should_poll and not self.is_polling:
            self._tasks.register(self.job_name, CronJob(handler=self._poll_job, period=self._poll_interval))
            logger.debug("Polling %s every %.1fs", self._handle, self._poll_interval)
        elif not should_poll and self.is_polling:
            await self._tasks.unregister(self.job_name)
            logger.debug("Stopped polling %s", self._handle)

    async def _poll_job(self) -> None:
        await self.poll()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _apply(self, status: OpenStatus | PendingStatus | TakenStatus) -> None:
        outcome = reconcile(status, self.expected_script())
        if outcome.ownership == Ownership.OWNED and outcome.cert_data is not None:
            await self._keystore.set_handle_cert_data(self._network, self._handle, outcome.cert_data)
        elif outcome.ownership == Ownership.FOREIGN:
            logger.info("%s on %s is owned by another script", self._handle, self._network)
            if self._clear_foreign:
                await self._keystore.set_handle_cert_data(self._network, self._handle, None)

        record = self._keystore.get_handle(self._network, self._handle)
        cert = None
        if record is not None and outcome.ownership != Ownership.FOREIGN:
            cert = record.cert
        self._update(status=status, ownership=outcome.ownership, cert=cert)
        await self._sync_polling()

    def _update(self, **changes: object) -> None:
        self._snapshot = dataclasses.replace(self._snapshot, **changes)  # type: ignore[arg-type]
        for listener in list(self._listeners):
            listener(self._snapshot)
