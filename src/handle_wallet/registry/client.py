"""Handle registry HTTP client — search, status, reserve, claim.

Provides an async HTTP client for the registry JSON API:
- POST /proposed — Suggest available handles for a query
- POST /spaces/status — Current status of a batch of handles
- POST /reserve — Time-boxed hold on a handle pending payment
- POST /claim — Submit payment proof and claim a handle

Status lookups are advisory and polled repeatedly, so their failures
degrade to empty results. Reserve and claim are one-shot user actions and
report failures as an ``error`` string on the result instead of raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from handle_wallet.errors import RegistryError, ValidationError
from handle_wallet.errors.definitions import ERR_NETWORK
from handle_wallet.registry.models import (
    ClaimResult,
    ReserveError,
    ReserveResult,
    parse_handle_statuses,
    unknown_status,
)

if TYPE_CHECKING:
    from handle_wallet.config.settings import Network, PaymentMethod, RegistryConfig
    from handle_wallet.registry.models import OpenStatus, PendingStatus, TakenStatus

logger = logging.getLogger(__name__)


class HandleRegistryClient:
    """Async HTTP client for the handle registry API.

    Usage::

        registry = HandleRegistryClient(config)
        await registry.connect()
        try:
            status = await registry.fetch_handle_status(Network.MAINNET, "alice@bitcoin")
        finally:
            await registry.close()
    """

    def __init__(self, config: RegistryConfig) -> None:
        """Initialize the registry client.

        Args:
            config: Registry configuration (per-network URLs, timeout).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            headers={
                "Content-Type": "application/json",
                "User-Agent": self._config.user_agent,
            },
            timeout=self._config.timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_proposed_handles(self, network: Network, query: str) -> list[str]:
        """Handles the registry suggests for *query*; empty on any failure."""
        try:
            data = await self._post_json(network, "/proposed", {"query": query})
            proposed = data.get("available_subspaces") if isinstance(data, dict) else None
            if proposed is None:
                return []
            if not isinstance(proposed, list) or not all(isinstance(h, str) for h in proposed):
                msg = "Invalid API response"
                raise ValidationError(msg)
        except (RegistryError, ValidationError) as exc:
            logger.warning("Failed to fetch proposed handles: %s", exc.message)
            return []
        return proposed

    async def fetch_handle_statuses(
        self,
        network: Network,
        handles: list[str],
    ) -> list[OpenStatus | PendingStatus | TakenStatus]:
        """Statuses of *handles*; empty on any failure."""
        try:
            data = await self._post_json(network, "/spaces/status", {"handles": handles})
            return parse_handle_statuses(data)
        except (RegistryError, ValidationError) as exc:
            logger.warning("Failed to fetch handle statuses: %s", exc.message)
            return []

    async def fetch_handle_status(
        self,
        network: Network,
        handle: str,
    ) -> OpenStatus | PendingStatus | TakenStatus:
        """Status of one handle, ``unknown`` when the registry has no answer."""
        for status in await self.fetch_handle_statuses(network, [handle]):
            if status.handle == handle:
                return status
        return unknown_status(handle)

    async def reserve_handle(
        self,
        network: Network,
        handle: str,
        script_pubkey: str,
        *,
        payment_type: str = "iap",
    ) -> ReserveResult | ReserveError:
        """Reserve *handle* for *script_pubkey*.

        Returns a :class:`ReserveError` on failure: a non-2xx response
        carries its trimmed body, while transport and shape failures carry
        ``"Network error"``. A success body is trusted only as a whole.
        """
        body = {"handle": handle, "script_pubkey": script_pubkey, "payment_type": payment_type}
        try:
            response = await self._post(network, "/reserve", body)
            if not response.is_success:
                return ReserveError(error=response.text.strip())
            return ReserveResult.model_validate(response.json())
        except (RegistryError, PydanticValidationError, ValueError) as exc:
            logger.warning("Failed to reserve handle %s: %s", handle, exc)
            return ReserveError(error=ERR_NETWORK)

    async def claim_handle(
        self,
        network: Network,
        handle: str,
        script_pubkey: str,
        purchase_token: str,
        payment_method: PaymentMethod,
    ) -> ClaimResult:
        """Submit payment proof for *handle*.

        The registry answers with the handle's fresh status and an optional
        error, whatever the HTTP status. Transport and shape failures yield
        an ``unknown`` status with ``"Network error"``.
        """
        body = {
            "handle": handle,
            "script_pubkey": script_pubkey,
            "purchase_token": purchase_token,
            "payment_method": str(payment_method),
        }
        try:
            response = await self._post(network, "/claim", body)
            return ClaimResult.model_validate(response.json())
        except (RegistryError, PydanticValidationError, ValueError) as exc:
            logger.warning("Failed to claim handle %s: %s", handle, exc)
            return ClaimResult(handle_status=unknown_status(handle), error=ERR_NETWORK)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Registry client not connected. Call connect() first."
            raise RegistryError(msg)
        return self._client

    async def _post(self, network: Network, path: str, body: dict[str, Any]) -> httpx.Response:
        client = self._ensure_connected()
        url = self._config.url_for(network) + path
        try:
            return await client.post(url, json=body)
        except httpx.HTTPError as exc:
            msg = f"Registry request {path} failed: {exc}"
            raise RegistryError(msg) from exc

    async def _post_json(self, network: Network, path: str, body: dict[str, Any]) -> Any:
        """POST and decode a 2xx JSON body."""
        response = await self._post(network, path, body)
        if not response.is_success:
            msg = f"Registry {path} failed ({response.status_code})"
            raise RegistryError(msg, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            msg = f"Registry {path} returned invalid JSON"
            raise ValidationError(msg) from exc

