#!/usr/bin/env python3
"""Handle Wallet Tool — set up a master key, manage and claim handles.

A command-line front end over :class:`HandleWalletEngine`:

    # Create the keystore from a new (or given) BIP39 mnemonic
    handle-wallet setup [word ...]

    # Allocate / drop a handle locally
    handle-wallet create <network> <handle>
    handle-wallet remove <network> <handle>

    # Inspect handles and the registry
    handle-wallet list <network>
    handle-wallet status <network> <handle>
    handle-wallet search <network> <query>

    # Reserve and claim with a test purchase (testnet registries)
    handle-wallet buy <network> <handle>

    # Sign a Nostr event (JSON file, or - for stdin)
    handle-wallet sign <network> <handle> <event.json|->

    # Write <handle>.req.json / <handle>.cert.json
    handle-wallet export-request <network> <handle> [dir]
    handle-wallet export-cert <network> <handle> [dir]

Networks are ``mainnet`` and ``testnet4``. Settings come from
``HANDLEWALLET_*`` environment variables (see ``config/settings.py``);
the encrypted secure store reads its passphrase from
``HANDLEWALLET_PASSPHRASE`` or prompts for it.
"""

from __future__ import annotations

import asyncio
import getpass
import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from handle_wallet.config.settings import AppConfig, Network, SecureStoreEngine
from handle_wallet.errors import WalletError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from handle_wallet.claims.machine import ClaimSnapshot
    from handle_wallet.engine.client import HandleWalletEngine

logger = logging.getLogger(__name__)

_USAGE = (__doc__ or "").split("\n\n", 1)[1].split("Networks are", 1)[0]


class UsageError(Exception):
    """Bad command line."""


def _network(value: str) -> Network:
    try:
        return Network(value.lower())
    except ValueError as exc:
        msg = f"unknown network {value!r} (expected mainnet or testnet4)"
        raise UsageError(msg) from exc


def _passphrase(config: AppConfig) -> str | None:
    if config.secure.engine != SecureStoreEngine.ENCRYPTED:
        return None
    return os.environ.get("HANDLEWALLET_PASSPHRASE") or getpass.getpass("Secure store passphrase: ")


def _run(
    config: AppConfig,
    body: Callable[[HandleWalletEngine], Awaitable[None]],
    *,
    needs_secret: bool = False,
) -> None:
    from handle_wallet.engine.client import HandleWalletEngine

    async def _main() -> None:
        engine = HandleWalletEngine(config)
        await engine.initialize()
        try:
            if needs_secret:
                passphrase = _passphrase(config)
                if passphrase is not None:
                    await engine.unlock(passphrase)
            await body(engine)
        finally:
            await engine.close()

    asyncio.run(_main())


def _print_snapshot(handle: str, snapshot: ClaimSnapshot) -> None:
    from handle_wallet.claims.documents import split_handle

    sub, space = split_handle(handle)
    print(f"Handle:    {space if sub is None else f'{sub} {space}'}")
    print(f"Status:    {snapshot.kind or 'unknown'}")
    print(f"Ownership: {snapshot.ownership}")
    if snapshot.deadline is not None:
        print(f"Deadline:  {snapshot.deadline}")
    if snapshot.cert is not None:
        print(f"Proof:     {snapshot.cert.witness.data}")
    if snapshot.message:
        print(f"Message:   {snapshot.message}")


def _write_json(directory: str, filename: str, document: dict[str, Any]) -> Path:
    path = Path(directory) / filename
    path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_setup(config: AppConfig, words: list[str]) -> None:
    """Store a master key derived from a BIP39 mnemonic."""
    from handle_wallet.keys.mnemonic import generate_mnemonic, validate_mnemonic, xprv_from_mnemonic

    mnemonic = " ".join(words) if words else generate_mnemonic()
    if not validate_mnemonic(mnemonic):
        msg = "invalid mnemonic"
        raise UsageError(msg)
    if not words:
        print("Write down your recovery phrase:")
        print(f"  {mnemonic}")
        print()

    async def body(engine: HandleWalletEngine) -> None:
        await engine.keystore.setup(xprv_from_mnemonic(mnemonic))
        print(f"Master public key: {engine.keystore.master_public_key}")

    _run(config, body, needs_secret=True)


def _cmd_list(config: AppConfig, network: Network) -> None:
    """List locally allocated handles."""

    async def body(engine: HandleWalletEngine) -> None:
        handles = engine.keystore.handles(network)
        if not handles:
            print(f"No handles on {network}")
            return
        for name, record in sorted(handles.items()):
            marker = "certified" if record.cert is not None else "pending"
            print(f"{name:<32} {record.path:<20} {marker}")

    _run(config, body)


def _cmd_create(config: AppConfig, network: Network, handle: str) -> None:
    async def body(engine: HandleWalletEngine) -> None:
        record = await engine.keystore.create_handle(network, handle)
        machine = engine.claim_machine(network, handle)
        print(f"{handle} -> {record.path}")
        print(f"Script pubkey: {machine.expected_script()}")

    _run(config, body)


def _cmd_remove(config: AppConfig, network: Network, handle: str) -> None:
    async def body(engine: HandleWalletEngine) -> None:
        await engine.keystore.remove_handle(network, handle)
        print(f"Removed {handle} from {network}")

    _run(config, body)


def _cmd_status(config: AppConfig, network: Network, handle: str) -> None:
    async def body(engine: HandleWalletEngine) -> None:
        machine = engine.claim_machine(network, handle)
        _print_snapshot(handle, await machine.poll())

    _run(config, body)


def _cmd_search(config: AppConfig, network: Network, query: str) -> None:
    async def body(engine: HandleWalletEngine) -> None:
        for name in await engine.registry.fetch_proposed_handles(network, query):
            print(name)

    _run(config, body)


def _cmd_buy(config: AppConfig, network: Network, handle: str) -> None:
    """Reserve and claim *handle* paying with a test purchase token."""
    from handle_wallet.claims.purchase import TestPurchaseProvider

    async def body(engine: HandleWalletEngine) -> None:
        machine = engine.claim_machine(network, handle)
        async with machine:
            if not machine.snapshot.can_buy:
                _print_snapshot(handle, machine.snapshot)
                return
            snapshot = await machine.buy(TestPurchaseProvider())
            while snapshot.is_processing and snapshot.error is None:
                await asyncio.sleep(config.claim.poll_interval)
                snapshot = machine.snapshot
            _print_snapshot(handle, snapshot)

    _run(config, body)


def _cmd_sign(config: AppConfig, network: Network, handle: str, source: str) -> None:
    """Sign event data read from a JSON file (or stdin)."""
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"cannot read event data from {source}: {exc.strerror or exc}"
        raise UsageError(msg) from exc
    try:
        data = json.loads(text)
    except ValueError as exc:
        msg = f"event data in {source} is not valid JSON: {exc}"
        raise UsageError(msg) from exc
    if not isinstance(data, dict):
        msg = "event data must be a JSON object"
        raise UsageError(msg)

    async def body(engine: HandleWalletEngine) -> None:
        event = await engine.sign_event(network, handle, data)
        print(event.model_dump_json(indent=2))

    _run(config, body, needs_secret=True)


def _cmd_export(config: AppConfig, network: Network, handle: str, directory: str, *, cert: bool) -> None:
    from handle_wallet.claims.documents import (
        build_certificate_document,
        build_request_document,
        certificate_filename,
        request_filename,
    )

    async def body(engine: HandleWalletEngine) -> None:
        record = engine.keystore.get_handle(network, handle)
        if record is None:
            msg = f"{handle} is not in the keystore for {network}"
            raise UsageError(msg)
        script = engine.claim_machine(network, handle).expected_script()
        if cert:
            if record.cert is None:
                msg = f"{handle} has no certificate yet"
                raise UsageError(msg)
            path = _write_json(directory, certificate_filename(handle), build_certificate_document(record.cert, handle, script))
        else:
            path = _write_json(directory, request_filename(handle), build_request_document(handle, script))
        print(f"Wrote {path}")

    _run(config, body)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = "-v" in args or "--verbose" in args
    args = [a for a in args if a not in ("-v", "--verbose")]
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args:
        print(_USAGE)
        return 1

    config = AppConfig()
    cmd, rest = args[0].lower(), args[1:]
    try:
        if cmd == "setup":
            _cmd_setup(config, rest)
        elif cmd == "list" and len(rest) == 1:
            _cmd_list(config, _network(rest[0]))
        elif cmd == "create" and len(rest) == 2:
            _cmd_create(config, _network(rest[0]), rest[1])
        elif cmd == "remove" and len(rest) == 2:
            _cmd_remove(config, _network(rest[0]), rest[1])
        elif cmd == "status" and len(rest) == 2:
            _cmd_status(config, _network(rest[0]), rest[1])
        elif cmd == "search" and len(rest) == 2:
            _cmd_search(config, _network(rest[0]), rest[1])
        elif cmd == "buy" and len(rest) == 2:
            _cmd_buy(config, _network(rest[0]), rest[1])
        elif cmd == "sign" and len(rest) == 3:
            _cmd_sign(config, _network(rest[0]), rest[1], rest[2])
        elif cmd in ("export-request", "export-cert") and len(rest) in (2, 3):
            directory = rest[2] if len(rest) == 3 else "."
            _cmd_export(config, _network(rest[0]), rest[1], directory, cert=cmd == "export-cert")
        else:
            print(_USAGE)
            return 1
    except UsageError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except WalletError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
