"""Tests for the claim state machine — poll, reserve, buy, polling lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from handle_wallet.claims.machine import ClaimSnapshot, ClaimStateMachine
from handle_wallet.claims.purchase import PurchaseProof, TestPurchaseProvider, make_test_purchase_token
from handle_wallet.claims.reconcile import Ownership
from handle_wallet.config.settings import Network, PaymentMethod
from handle_wallet.errors import KeystoreError, PurchaseError
from handle_wallet.errors.definitions import (
    ERR_NETWORK,
    ERR_NO_PRODUCT,
    ERR_NO_PURCHASE_TOKEN,
    MSG_CERT_PENDING,
    MSG_RESERVED_BY_OTHER,
    MSG_TAKEN_BY_OTHER,
)
from handle_wallet.registry.models import ReserveError, StatusKind
from handle_wallet.taskmanager import TaskManager

_HANDLE = "alice@bitcoin"
_OTHER_SCRIPT = "5120" + "ee" * 32
_WITNESS = {"type": "schnorr", "data": "cd" * 32}


@pytest.fixture
async def machine(keystore, registry):
    await keystore.create_handle(Network.MAINNET, _HANDLE)
    return ClaimStateMachine(keystore, registry, Network.MAINNET, _HANDLE, poll_interval=0.01)


class _CancellingProvider:
    def __init__(self) -> None:
        self.finished: list[PurchaseProof] = []

    async def purchase(self, product_id: str) -> PurchaseProof | None:
        return None

    async def finish(self, proof: PurchaseProof) -> None:
        self.finished.append(proof)


class _FailingProvider(_CancellingProvider):
    async def purchase(self, product_id: str) -> PurchaseProof | None:
        msg = "card declined"
        raise PurchaseError(msg)


class _EmptyTokenProvider(_CancellingProvider):
    async def purchase(self, product_id: str) -> PurchaseProof | None:
        return PurchaseProof(token="", method=PaymentMethod.GOOGLE_IAP)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestClaimSnapshot:
    def test_initial(self) -> None:
        snapshot = ClaimSnapshot()
        assert snapshot.kind is None
        assert snapshot.ownership == Ownership.NONE
        assert snapshot.can_buy is False
        assert snapshot.message is None

    def test_error_takes_precedence(self) -> None:
        snapshot = ClaimSnapshot(ownership=Ownership.FOREIGN, error="Sold out")
        assert snapshot.message == "Sold out"


# ---------------------------------------------------------------------------
# Poll and reconcile
# ---------------------------------------------------------------------------


class TestPoll:
    async def test_unknown_when_registry_silent(self, machine) -> None:
        snapshot = await machine.poll()
        assert snapshot.kind == StatusKind.UNKNOWN
        assert snapshot.can_remove is True

    async def test_available(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        snapshot = await machine.poll()
        assert snapshot.can_buy is True
        assert snapshot.ownership == Ownership.NONE

    async def test_owned_certificate_attached(self, machine, keystore, fake_registry) -> None:
        script = machine.expected_script()
        cert = {"handle": _HANDLE, "script_pubkey": script, "witness": _WITNESS}
        fake_registry.set_status(_HANDLE, "taken", script_pubkey=script, certificate=cert)

        snapshot = await machine.poll()
        assert snapshot.ownership == Ownership.OWNED
        assert snapshot.cert is not None
        assert snapshot.message is None
        stored = keystore.get_handle(Network.MAINNET, _HANDLE)
        assert stored.cert.witness.data == _WITNESS["data"]

    async def test_repeated_polls_write_cert_once(self, machine, memory_store, fake_registry) -> None:
        script = machine.expected_script()
        cert = {"handle": _HANDLE, "script_pubkey": script, "witness": _WITNESS}
        fake_registry.set_status(_HANDLE, "taken", script_pubkey=script, certificate=cert)
        await machine.poll()
        writes = memory_store.write_count
        await machine.poll()
        await machine.poll()
        assert memory_store.write_count == writes

    async def test_owned_without_cert_message(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "taken", script_pubkey=machine.expected_script())
        snapshot = await machine.poll()
        assert snapshot.ownership == Ownership.OWNED
        assert snapshot.message == MSG_CERT_PENDING

    async def test_taken_by_other_leaves_keystore_untouched(self, machine, keystore, memory_store, fake_registry):
        cert = {"handle": _HANDLE, "script_pubkey": _OTHER_SCRIPT, "witness": _WITNESS}
        fake_registry.set_status(_HANDLE, "taken", script_pubkey=_OTHER_SCRIPT, certificate=cert)
        writes = memory_store.write_count

        snapshot = await machine.poll()
        assert snapshot.ownership == Ownership.FOREIGN
        assert snapshot.message == MSG_TAKEN_BY_OTHER
        assert snapshot.can_remove is True
        assert snapshot.cert is None
        assert keystore.get_handle(Network.MAINNET, _HANDLE).cert is None
        assert memory_store.write_count == writes

    async def test_foreign_hides_existing_cert(self, machine, keystore, fake_registry) -> None:
        from handle_wallet.certs import CertData

        await keystore.set_handle_cert_data(Network.MAINNET, _HANDLE, CertData.model_validate({"witness": _WITNESS}))
        fake_registry.set_status(_HANDLE, "taken", script_pubkey=_OTHER_SCRIPT)

        snapshot = await machine.poll()
        assert snapshot.cert is None
        assert keystore.get_handle(Network.MAINNET, _HANDLE).cert is not None

    async def test_clear_foreign_certificates(self, keystore, registry, fake_registry) -> None:
        from handle_wallet.certs import CertData

        await keystore.create_handle(Network.MAINNET, _HANDLE)
        await keystore.set_handle_cert_data(Network.MAINNET, _HANDLE, CertData.model_validate({"witness": _WITNESS}))
        fake_registry.set_status(_HANDLE, "taken", script_pubkey=_OTHER_SCRIPT)
        machine = ClaimStateMachine(
            keystore, registry, Network.MAINNET, _HANDLE, clear_foreign_certificates=True
        )

        await machine.poll()
        assert keystore.get_handle(Network.MAINNET, _HANDLE).cert is None

    async def test_reserved_by_other(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "reserved", script_pubkey=_OTHER_SCRIPT)
        snapshot = await machine.poll()
        assert snapshot.ownership == Ownership.FOREIGN
        assert snapshot.message == MSG_RESERVED_BY_OTHER
        assert snapshot.is_processing is False

    async def test_listeners_notified(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        seen: list[ClaimSnapshot] = []
        unsubscribe = machine.subscribe(seen.append)
        await machine.poll()
        assert seen[-1].kind == StatusKind.AVAILABLE
        unsubscribe()
        count = len(seen)
        await machine.poll()
        assert len(seen) == count

    async def test_expected_script_requires_handle(self, keystore, registry) -> None:
        machine = ClaimStateMachine(keystore, registry, Network.MAINNET, "ghost@bitcoin")
        with pytest.raises(KeystoreError):
            machine.expected_script()


# ---------------------------------------------------------------------------
# Reserve / buy
# ---------------------------------------------------------------------------


class TestBuy:
    async def test_full_purchase(self, machine, fake_registry, keystore) -> None:
        fake_registry.set_status(_HANDLE, "available")
        provider = TestPurchaseProvider()

        snapshot = await machine.buy(provider)
        assert snapshot.kind == StatusKind.TAKEN
        assert snapshot.ownership == Ownership.OWNED
        assert snapshot.purchasing is False
        assert snapshot.product_id == "handle_tier_1"
        assert snapshot.deadline == 1_700_000_000
        assert len(provider.finished) == 1
        assert keystore.get_handle(Network.MAINNET, _HANDLE).cert is not None

        paths = [path for path, _ in fake_registry.requests]
        assert paths.index("/reserve") < paths.index("/claim")
        claim_body = dict(fake_registry.requests)["/claim"]
        assert claim_body["payment_method"] == "test"
        assert claim_body["purchase_token"].startswith("test_valid_purchase_")
        assert claim_body["script_pubkey"] == machine.expected_script()

    async def test_reserve_error_shown_verbatim(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        fake_registry.reserve_error = "Handle is not available"
        provider = TestPurchaseProvider()

        snapshot = await machine.buy(provider)
        assert snapshot.error == "Handle is not available"
        assert snapshot.message == "Handle is not available"
        assert snapshot.kind == StatusKind.AVAILABLE
        assert provider.finished == []
        assert "/claim" not in [path for path, _ in fake_registry.requests]

    async def test_malformed_reservation_not_trusted(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        fake_registry.reserve_body = {
            "deadline": None,
            "handle_status": {"handle": _HANDLE, "status": "available"},
            "product_id": None,
        }
        provider = TestPurchaseProvider()

        snapshot = await machine.buy(provider)
        assert snapshot.error == ERR_NETWORK
        assert snapshot.purchasing is False
        assert snapshot.product_id is None
        assert snapshot.deadline is None
        assert provider.finished == []
        assert "/claim" not in [path for path, _ in fake_registry.requests]
        assert fake_registry.requests[-1][0] == "/spaces/status"

    async def test_reserve_returns_error_variant(self, machine, fake_registry) -> None:
        fake_registry.reserve_body = {"deadline": 1}
        result = await machine.reserve()
        assert result == ReserveError(error=ERR_NETWORK)
        assert machine.snapshot.error == ERR_NETWORK

    async def test_empty_product_id(self, machine, fake_registry) -> None:
        fake_registry.reserve_body = {
            "deadline": 1_700_000_000,
            "handle_status": {"handle": _HANDLE, "status": "reserved", "script_pubkey": machine.expected_script()},
            "product_id": "",
        }
        provider = TestPurchaseProvider()

        snapshot = await machine.buy(provider)
        assert snapshot.error == ERR_NO_PRODUCT
        assert snapshot.kind == StatusKind.RESERVED
        assert "/claim" not in [path for path, _ in fake_registry.requests]

    async def test_cancelled_purchase_repolls(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        provider = _CancellingProvider()

        snapshot = await machine.buy(provider)
        assert snapshot.error is None
        assert snapshot.kind == StatusKind.RESERVED
        assert snapshot.is_processing is True
        assert provider.finished == []

    async def test_failed_purchase(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        snapshot = await machine.buy(_FailingProvider())
        assert snapshot.error == "Failed purchase: card declined"
        assert snapshot.purchasing is False

    async def test_missing_token(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        snapshot = await machine.buy(_EmptyTokenProvider())
        assert snapshot.error == ERR_NO_PURCHASE_TOKEN

    async def test_claim_error_repolls(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        fake_registry.claim_error = "Payment not verified"
        provider = TestPurchaseProvider()

        snapshot = await machine.buy(provider)
        assert snapshot.error == "Payment not verified"
        assert snapshot.kind == StatusKind.RESERVED
        assert provider.finished == []
        assert fake_registry.requests[-1][0] == "/spaces/status"

    async def test_purchasing_flag_during_buy(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        flags: list[bool] = []
        machine.subscribe(lambda snapshot: flags.append(snapshot.purchasing))
        await machine.buy(TestPurchaseProvider())
        assert flags[0] is True
        assert flags[-1] is False


# ---------------------------------------------------------------------------
# Polling lifecycle
# ---------------------------------------------------------------------------


class TestPolling:
    async def test_no_job_when_not_pending(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "available")
        async with machine:
            assert machine.is_polling is False

    async def test_polls_while_pending_then_stops(self, keystore, registry, fake_registry) -> None:
        await keystore.create_handle(Network.MAINNET, _HANDLE)
        tasks = TaskManager()
        await tasks.start()
        machine = ClaimStateMachine(
            keystore, registry, Network.MAINNET, _HANDLE, task_manager=tasks, poll_interval=0.01
        )
        try:
            fake_registry.set_status(_HANDLE, "processing_payment", script_pubkey=machine.expected_script())
            async with machine:
                assert machine.is_polling is True
                assert tasks.has_job(machine.job_name)

                fake_registry.set_status(_HANDLE, "taken", script_pubkey=machine.expected_script())
                for _ in range(100):
                    if not machine.is_polling:
                        break
                    await asyncio.sleep(0.01)

                assert machine.is_polling is False
                assert machine.snapshot.kind == StatusKind.TAKEN
            assert not tasks.has_job(machine.job_name)
        finally:
            await tasks.stop()

    async def test_exit_cancels_job(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "reserved", script_pubkey=machine.expected_script())
        async with machine:
            assert machine.is_polling is True
        assert machine.is_polling is False

    async def test_job_name(self, machine) -> None:
        assert machine.job_name == f"poll:mainnet:{_HANDLE}"

    async def test_no_polling_unless_watching(self, machine, fake_registry) -> None:
        fake_registry.set_status(_HANDLE, "reserved", script_pubkey=machine.expected_script())
        await machine.poll()
        assert machine.snapshot.is_pending is True
        assert machine.is_polling is False


class TestPurchaseToken:
    def test_format(self) -> None:
        token = make_test_purchase_token()
        prefix, _, suffix = token.partition(".")
        assert prefix.startswith("test_valid_purchase_")
        assert prefix.removeprefix("test_valid_purchase_").isdigit()
        assert len(suffix) == 12

    def test_proof_repr_hides_token(self) -> None:
        proof = PurchaseProof(token="secret-token", method=PaymentMethod.TEST)
        assert "secret-token" not in repr(proof)
