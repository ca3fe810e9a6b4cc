"""Unit tests for the key-value storage tiers."""

from unittest.mock import AsyncMock

import pytest

from clientsplus.storage import (
    EncryptedKeyValueStore,
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    SQLiteKeyValueStore,
    get_durable_store
)
from clientsplus.utils import FernetEncryptor, generate_fernet_key


class TestSQLiteKeyValueStore:
    @pytest.mark.asyncio
    async def test_set_get_delete(self, tmp_path):
        store = SQLiteKeyValueStore(db_path=str(tmp_path / "kv.sqlite3"))
        await store.initialize()
        try:
            assert await store.get("clientPortalSession") is None

            await store.set("clientPortalSession", '{"clientId": "c1"}')
            await store.set("clientPortalSession", '{"clientId": "c2"}')
            assert await store.get_json("clientPortalSession") == {"clientId": "c2"}

            await store.delete("clientPortalSession")
            assert await store.get("clientPortalSession") is None
        finally:
            await store.teardown()

    @pytest.mark.asyncio
    async def test_entries_survive_reopen(self, tmp_path):
        db_path = str(tmp_path / "nested" / "kv.sqlite3")
        first = SQLiteKeyValueStore(db_path=db_path)
        await first.set("websocket-enabled", "false")
        await first.teardown()

        second = SQLiteKeyValueStore(db_path=db_path)
        try:
            assert await second.get("websocket-enabled") == "false"
        finally:
            await second.teardown()


class TestRedisKeyValueStore:
    @pytest.mark.asyncio
    async def test_uses_prefixed_keys(self):
        client = AsyncMock()
        client.get.return_value = b"true"
        store = RedisKeyValueStore(key_prefix="test:kv", client=client)

        assert await store.get("websocket-enabled") == "true"
        await store.set("websocket-enabled", "false")
        await store.delete("websocket-enabled")

        client.get.assert_awaited_once_with("test:kv:websocket-enabled")
        client.set.assert_awaited_once_with("test:kv:websocket-enabled", b"false")
        client.delete.assert_awaited_once_with("test:kv:websocket-enabled")

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self):
        client = AsyncMock()
        client.get.return_value = None
        store = RedisKeyValueStore(client=client)

        assert await store.get("session_credential") is None


class TestEncryptedKeyValueStore:
    @pytest.mark.asyncio
    async def test_values_are_encrypted_at_rest(self):
        inner = InMemoryKeyValueStore()
        store = EncryptedKeyValueStore(inner, FernetEncryptor(generate_fernet_key()))

        await store.set("session_credential", '{"access_token": "secret-access-token"}')

        assert "secret-access-token" not in await inner.get("session_credential")
        assert await store.get_json("session_credential") == {"access_token": "secret-access-token"}

    @pytest.mark.asyncio
    async def test_value_written_with_other_key_reads_as_absent(self):
        inner = InMemoryKeyValueStore()
        await EncryptedKeyValueStore(inner, FernetEncryptor(generate_fernet_key())).set("k", "v")

        store = EncryptedKeyValueStore(inner, FernetEncryptor(generate_fernet_key()))

        assert await store.get("k") is None

    def test_rejects_malformed_key(self):
        with pytest.raises(ValueError):
            FernetEncryptor("too-short")


class TestJsonHelpers:
    @pytest.mark.asyncio
    async def test_undecodable_entry_is_absent(self):
        store = InMemoryKeyValueStore()
        await store.set("clientPortalSession", "{broken")

        assert await store.get_json("clientPortalSession") is None


class TestDurableStoreFactory:
    @pytest.mark.asyncio
    async def test_memory_backend_from_settings(self):
        store = await get_durable_store()

        assert isinstance(store, InMemoryKeyValueStore)
        assert store.durable is True
        assert await get_durable_store() is store
