"""Tests for the general store — memory and file backends, StorageClient."""

from __future__ import annotations

import json

import pytest

from handle_wallet.config.settings import StorageConfig, StorageEngine
from handle_wallet.errors import StorageError
from handle_wallet.storage.client import StorageClient
from handle_wallet.storage.file import FileStore, atomic_write
from handle_wallet.storage.memory import MemoryStore

# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------


class TestMemoryStore:
    async def test_get_missing(self) -> None:
        store = MemoryStore()
        assert await store.get_item("nope") is None

    async def test_set_get_remove(self) -> None:
        store = MemoryStore()
        await store.set_item("k", "v")
        assert await store.get_item("k") == "v"
        await store.remove_item("k")
        assert await store.get_item("k") is None

    async def test_write_count(self) -> None:
        store = MemoryStore()
        await store.set_item("k", "v1")
        await store.set_item("k", "v2")
        await store.remove_item("missing")
        assert store.write_count == 2


# ---------------------------------------------------------------------------
# FileStore
# ---------------------------------------------------------------------------


class TestFileStore:
    async def test_missing_file_is_empty(self, tmp_path) -> None:
        store = FileStore(tmp_path / "store.json")
        await store.connect()
        assert await store.get_item("k") is None
        assert not store.path.exists()

    async def test_persists_across_instances(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        store = FileStore(path)
        await store.connect()
        await store.set_item("keystore", '{"xpub": "x"}')

        reopened = FileStore(path)
        await reopened.connect()
        assert await reopened.get_item("keystore") == '{"xpub": "x"}'

    async def test_remove_persists(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        store = FileStore(path)
        await store.connect()
        await store.set_item("a", "1")
        await store.set_item("b", "2")
        await store.remove_item("a")
        assert json.loads(path.read_text()) == {"b": "2"}

    async def test_malformed_file_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = FileStore(path)
        await store.connect()
        assert await store.get_item("a") is None
        await store.set_item("a", "1")
        assert json.loads(path.read_text()) == {"a": "1"}

    async def test_non_object_file_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")
        store = FileStore(path)
        await store.connect()
        assert await store.get_item("0") is None

    async def test_creates_parent_directory(self, tmp_path) -> None:
        path = tmp_path / "nested" / "dir" / "store.json"
        store = FileStore(path)
        await store.connect()
        await store.set_item("a", "1")
        assert path.exists()

    async def test_write_failure_raises_and_keeps_memory(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = FileStore(blocker / "store.json")
        await store.connect()
        with pytest.raises(StorageError, match="Failed to write"):
            await store.set_item("a", "1")
        assert await store.get_item("a") is None

    def test_atomic_write_leaves_no_temp_files(self, tmp_path) -> None:
        path = tmp_path / "doc.json"
        atomic_write(path, "{}")
        atomic_write(path, '{"a": "1"}')
        assert path.read_text() == '{"a": "1"}'
        assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


# ---------------------------------------------------------------------------
# StorageClient
# ---------------------------------------------------------------------------


class TestStorageClient:
    async def test_memory_engine(self) -> None:
        client = StorageClient(StorageConfig(engine=StorageEngine.MEMORY))
        assert client.is_connected is False
        await client.connect()
        assert client.is_connected is True
        await client.set_item("k", "v")
        assert await client.get_item("k") == "v"
        await client.close()
        assert client.is_connected is False

    async def test_file_engine(self, tmp_path) -> None:
        path = tmp_path / "wallet.json"
        client = StorageClient(StorageConfig(engine=StorageEngine.FILE, path=str(path)))
        await client.connect()
        await client.set_item("k", "v")
        await client.remove_item("k")
        await client.close()
        assert json.loads(path.read_text()) == {}

    async def test_not_connected_raises(self) -> None:
        client = StorageClient(StorageConfig(engine=StorageEngine.MEMORY))
        with pytest.raises(StorageError, match="not connected"):
            await client.get_item("k")

    async def test_close_idempotent(self) -> None:
        client = StorageClient(StorageConfig(engine=StorageEngine.MEMORY))
        await client.close()
        assert client.is_connected is False
