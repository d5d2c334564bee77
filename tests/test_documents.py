"""Tests for document field encryption helpers."""
import pytest

from zk_vault.exceptions import VaultLockedError
from zk_vault.vault.crypto import MasterKey, encrypt_field
from zk_vault.vault.documents import (
    ENCRYPTED_FIELDS,
    decrypt_document,
    encrypt_document,
    encrypted_fields,
    should_encrypt,
)
from zk_vault.vault.models import Failed
from zk_vault.vault.session_vault import VaultSession


@pytest.fixture
def session(store, clock, fast_kdf):
    return VaultSession(store, clock=clock)


CREDENTIAL = {
    "id": "c1",
    "userId": "u1",
    "name": "GitHub",
    "username": "octocat",
    "password": "hunter2",
    "notes": "",
    "url": None,
    "folderId": "f1",
}


class TestEncryptedFields:
    """Tests for the collection schema."""

    def test_known_collections(self):
        """Test every collection lists its encrypted fields."""
        assert "password" in ENCRYPTED_FIELDS["credentials"]
        assert encrypted_fields("folders") == ("name",)

    def test_unknown_collection(self):
        """Test unknown collections raise KeyError."""
        with pytest.raises(KeyError):
            encrypted_fields("nope")

    @pytest.mark.parametrize(
        "value,expected",
        [("x", True), ("", False), ("  ", False), (None, False), (3, False)],
    )
    def test_should_encrypt(self, value, expected):
        """Test only non-empty strings are encrypted."""
        assert should_encrypt(value) is expected


class TestDocuments:
    """Tests for encrypt_document / decrypt_document."""

    @pytest.mark.asyncio
    async def test_round_trip(self, session):
        """Test a credential survives encrypt then decrypt."""
        await session.unlock("pw", "u1", is_first_time=True)
        stored = await encrypt_document(session, "credentials", CREDENTIAL)
        assert stored["password"] != "hunter2"
        assert stored["folderId"] == "f1"
        assert stored["notes"] is None
        assert stored["url"] is None
        assert "cardPIN" not in stored
        restored = await decrypt_document(session, "credentials", stored)
        assert restored["name"] == "GitHub"
        assert restored["username"] == "octocat"
        assert restored["password"] == "hunter2"
        assert restored["notes"] is None

    @pytest.mark.asyncio
    async def test_encrypt_requires_unlock(self, session):
        """Test encrypting a document while locked raises."""
        with pytest.raises(VaultLockedError):
            await encrypt_document(session, "credentials", CREDENTIAL)

    @pytest.mark.asyncio
    async def test_decrypt_while_locked_returns_ciphertext(self, session):
        """Test a locked vault leaves documents encrypted."""
        await session.unlock("pw", "u1", is_first_time=True)
        stored = await encrypt_document(session, "credentials", CREDENTIAL)
        await session.lock()
        assert await decrypt_document(session, "credentials", stored) == stored

    @pytest.mark.asyncio
    async def test_undecryptable_field_marked(self, session):
        """Test a foreign blob becomes a Failed marker, others decrypt."""
        await session.unlock("pw", "u1", is_first_time=True)
        stored = await encrypt_document(session, "folders", {"name": "Work"})
        stored["name"] = encrypt_field(MasterKey(b"\x01" * 32), "Work")
        restored = await decrypt_document(session, "folders", stored)
        assert isinstance(restored["name"], Failed)
