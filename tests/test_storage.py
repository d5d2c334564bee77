"""Tests for the vault storage ports."""
import contextlib

import orjson
import pytest

from zk_vault.vault.models import SaltRecord
from zk_vault.vault.storage import MemoryMarkerStore, PostgresVaultStore


class FakeConnection:
    """Records statements; answers fetchrow from a canned row."""

    def __init__(self, pool):
        self.pool = pool

    async def execute(self, sql, *args):
        self.pool.executed.append((" ".join(sql.split()), args))

    async def fetchrow(self, sql, *args):
        self.pool.fetched.append((" ".join(sql.split()), args))
        return self.pool.row


class FakePool:
    """Minimal asyncpg-compatible pool."""

    def __init__(self, row=None):
        self.row = row
        self.executed = []
        self.fetched = []

    @contextlib.asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)


class TestMemoryStores:
    """Tests for the in-process stores."""

    def test_marker_store(self):
        """Test set/get/delete on the session marker store."""
        markers = MemoryMarkerStore()
        assert markers.get("vault_unlocked") is None
        markers.set("vault_unlocked", "123")
        assert markers.get("vault_unlocked") == "123"
        markers.delete("vault_unlocked")
        markers.delete("vault_unlocked")
        assert markers.get("vault_unlocked") is None

    @pytest.mark.asyncio
    async def test_clear_check_value_and_salt(self, store):
        """Test check value and salt record are cleared independently."""
        await store.set_check_value("u1", "blob")
        await store.set_salt_record("u1", SaltRecord())
        await store.clear_check_value("u1")
        assert await store.get_check_value("u1") is None
        assert await store.get_salt_record("u1") == SaltRecord()
        await store.clear_salt_record("u1")
        assert await store.get_salt_record("u1") is None

    @pytest.mark.asyncio
    async def test_wrapped_keys_per_credential(self, store):
        """Test wrapped keys are stored per (user, credential)."""
        await store.set_wrapped_key("u1", "cred-1", "a")
        await store.set_wrapped_key("u1", "cred-2", "b")
        assert await store.get_wrapped_key("u1", "cred-1") == "a"
        await store.clear_wrapped_key("u1", "cred-1")
        assert await store.get_wrapped_key("u1", "cred-1") is None
        assert await store.get_wrapped_key("u1", "cred-2") == "b"


class TestPostgresVaultStore:
    """Tests for the SQL-backed store against a fake pool."""

    @pytest.mark.asyncio
    async def test_get_check_value(self):
        """Test the check value is read from the keychain row."""
        pool = FakePool(row={"check_value": "blob", "salt_record": None})
        store = PostgresVaultStore(pool)
        assert await store.get_check_value("u1") == "blob"
        assert pool.fetched[0][1] == ("u1",)

    @pytest.mark.asyncio
    async def test_missing_row(self):
        """Test a missing keychain row reads as None."""
        store = PostgresVaultStore(FakePool(row=None))
        assert await store.get_check_value("u1") is None
        assert await store.get_salt_record("u1") is None
        assert await store.get_wrapped_key("u1", "cred-1") is None

    @pytest.mark.asyncio
    async def test_set_check_value_audits(self):
        """Test writes insert an audit row without the blob."""
        pool = FakePool()
        store = PostgresVaultStore(pool, session_id="s1")
        await store.set_check_value("u1", "blob")
        assert len(pool.executed) == 2
        upsert, audit = pool.executed
        assert upsert[0].startswith("INSERT INTO auth.user_vault_keychain")
        assert upsert[1] == ("u1", "blob")
        assert audit[0].startswith("INSERT INTO auth.user_vault_audit")
        assert audit[1] == ("u1", "check", "set", None, "s1")

    @pytest.mark.asyncio
    async def test_salt_record_round_trip(self):
        """Test salt records are stored as JSON and validated on read."""
        pool = FakePool()
        store = PostgresVaultStore(pool)
        record = SaltRecord(salt_version=2, salt_b64="c2FsdA==")
        await store.set_salt_record("u1", record)
        stored_json = pool.executed[0][1][1]
        pool.row = {"check_value": None, "salt_record": stored_json}
        assert await store.get_salt_record("u1") == record
        assert orjson.loads(stored_json)["salt_version"] == 2

    @pytest.mark.asyncio
    async def test_wrapped_key_lifecycle(self):
        """Test passkey blobs are upserted and soft-deleted."""
        pool = FakePool(row={"wrapped_key": "wrapped"})
        store = PostgresVaultStore(pool)
        await store.set_wrapped_key("u1", "cred-1", "wrapped")
        assert await store.get_wrapped_key("u1", "cred-1") == "wrapped"
        await store.clear_wrapped_key("u1", "cred-1")
        statements = [sql for sql, _ in pool.executed]
        assert any(s.startswith("UPDATE auth.user_vault_passkeys SET deleted_at") for s in statements)
        assert pool.executed[-1][1] == ("u1", "passkey:cred-1", "delete", None, None)

    @pytest.mark.asyncio
    async def test_clear_check_and_salt_audited(self):
        """Test check value and salt record are nulled by separate statements."""
        pool = FakePool()
        store = PostgresVaultStore(pool)
        await store.clear_check_value("u1")
        await store.clear_salt_record("u1")
        statements = [sql for sql, _ in pool.executed]
        assert statements[0].startswith("UPDATE auth.user_vault_keychain SET check_value = NULL")
        assert "salt_record" not in statements[0]
        assert statements[2].startswith("UPDATE auth.user_vault_keychain SET salt_record = NULL")
        assert pool.executed[1][1] == ("u1", "check", "clear", None, None)
        assert pool.executed[3][1] == ("u1", "salt", "clear", None, None)
