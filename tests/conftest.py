"""Shared test fixtures for the handle-wallet test suite."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from handle_wallet.config.settings import SecureStoreEngine, StorageEngine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from handle_wallet.keystore import Keystore
    from handle_wallet.registry.client import HandleRegistryClient

# BIP32 test vector 1 master keys (seed 000102030405060708090a0b0c0d0e0f)
XPRV_M = (
    "xprv9s21ZrQH143K3QTDL4LXw2F7HEK3wJUD2nW2nRk4stbPy6cq3jPPqjiChkVvvNKmPG"
    "JxWUtg6LnF5kejMRNNU3TGtRBeJgk33yuGBxrMPHi"
)
XPUB_M = (
    "xpub661MyMwAqRbcFtXgS5sYJABqqG9YLmC4Q1Rdap9gSE8NqtwybGhePY2gZ29ESFjqJo"
    "Cu1Rupje8YtGqsefD265TMg7usUDFdp6W1EGMcet8"
)

REGISTRY_URL = "https://registry.test/api"


@pytest.fixture
def master_xprv() -> str:
    return XPRV_M


@pytest.fixture
def master_xpub() -> str:
    return XPUB_M


@pytest.fixture
def app_config():
    """Provide a test AppConfig with in-memory stores and a fast poll."""
    from handle_wallet.config.settings import (
        AppConfig,
        ClaimConfig,
        RegistryConfig,
        SecureStoreConfig,
        StorageConfig,
    )

    return AppConfig(
        debug=True,
        registry=RegistryConfig(mainnet_url=REGISTRY_URL, testnet4_url=REGISTRY_URL),
        storage=StorageConfig(engine=StorageEngine.MEMORY),
        secure=SecureStoreConfig(engine=SecureStoreEngine.PLAIN),
        claim=ClaimConfig(poll_interval=0.01),
    )


@pytest.fixture
def memory_store():
    from handle_wallet.storage.memory import MemoryStore

    return MemoryStore()


@pytest.fixture
def secret_store(memory_store):
    from handle_wallet.secure.plain import PlainSecretStore

    return PlainSecretStore(memory_store)


@pytest.fixture
async def keystore(memory_store, secret_store) -> Keystore:
    """A keystore set up with the BIP32 vector-1 master key."""
    from handle_wallet.keystore import Keystore

    ks = Keystore(memory_store, secret_store)
    await ks.setup(XPRV_M)
    return ks


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def inject_transport(client: HandleRegistryClient, transport: httpx.MockTransport) -> None:
    """Replace the internal httpx client with one using mock transport."""
    client._client = httpx.AsyncClient(transport=transport)


class FakeRegistry:
    """In-memory registry answering /spaces/status, /reserve and /claim.

    ``statuses`` maps handle → status dict. Reserve moves an available
    handle to ``reserved`` for the caller's script; claim with a test
    token moves it to ``taken`` and, when ``issue_certificates`` is set,
    attaches a certificate. ``reserve_body`` replaces the 200 reserve
    answer verbatim.
    """

    def __init__(self) -> None:
        self.statuses: dict[str, dict[str, Any]] = {}
        self.issue_certificates = True
        self.reserve_error: str | None = None
        self.reserve_body: Any = None
        self.claim_error: str | None = None
        self.requests: list[tuple[str, dict[str, Any]]] = []

    def set_status(self, handle: str, status: str, **extra: Any) -> None:
        self.statuses[handle] = {"handle": handle, "status": status, **extra}

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        path = request.url.path.removeprefix("/api")
        self.requests.append((path, body))
        if path == "/spaces/status":
            found = [self.statuses[h] for h in body["handles"] if h in self.statuses]
            return httpx.Response(200, json=found)
        if path == "/reserve":
            return self._reserve(body)
        if path == "/claim":
            return self._claim(body)
        if path == "/proposed":
            return httpx.Response(200, json={"available_subspaces": [f"{body['query']}@bitcoin"]})
        return httpx.Response(404, text="not found")

    def _reserve(self, body: dict[str, Any]) -> httpx.Response:
        if self.reserve_error is not None:
            return httpx.Response(409, text=f"  {self.reserve_error}\n")
        if self.reserve_body is not None:
            return httpx.Response(200, json=self.reserve_body)
        handle = body["handle"]
        self.set_status(handle, "reserved", script_pubkey=body["script_pubkey"])
        return httpx.Response(
            200,
            json={"deadline": 1_700_000_000, "handle_status": self.statuses[handle], "product_id": "handle_tier_1"},
        )

    def _claim(self, body: dict[str, Any]) -> httpx.Response:
        handle = body["handle"]
        if self.claim_error is not None:
            return httpx.Response(400, json={"handle_status": self.statuses[handle], "error": self.claim_error})
        extra: dict[str, Any] = {"script_pubkey": body["script_pubkey"]}
        if self.issue_certificates:
            extra["certificate"] = {
                "handle": handle,
                "script_pubkey": body["script_pubkey"],
                "witness": {"type": "schnorr", "data": "ab" * 32},
            }
        self.set_status(handle, "taken", **extra)
        return httpx.Response(200, json={"handle_status": self.statuses[handle]})


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def make_registry(app_config) -> Callable[[Callable[[httpx.Request], httpx.Response]], HandleRegistryClient]:
    """Build a registry client whose requests go to *handler*."""
    from handle_wallet.registry.client import HandleRegistryClient

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> HandleRegistryClient:
        client = HandleRegistryClient(app_config.registry)
        inject_transport(client, httpx.MockTransport(handler))
        return client

    return factory


@pytest.fixture
async def registry(make_registry, fake_registry) -> AsyncIterator[HandleRegistryClient]:
    """Registry client wired to :class:`FakeRegistry`."""
    client = make_registry(fake_registry.handler)
    yield client
    await client.close()
