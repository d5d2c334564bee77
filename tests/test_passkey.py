"""Tests for passkey key wrapping."""
import base64
import hashlib

import pytest

from zk_vault.exceptions import PasskeyUnlockFailedError
from zk_vault.vault.crypto import decrypt_field, encrypt_field
from zk_vault.vault.passkey import (
    WRAP_IV_SIZE,
    derive_wrap_key,
    unwrap_master_key,
    wrap_master_key,
)


class TestPasskeyKeyWrap:
    """Tests for derive_wrap_key / wrap / unwrap."""

    def test_wrap_key_is_sha256_of_credential_and_user(self):
        """Test Kwrap = SHA-256(credential_id || user_id)."""
        kwrap = derive_wrap_key("cred-1", "u1")
        assert kwrap.export() == hashlib.sha256(b"cred-1u1").digest()

    def test_round_trip_behaves_like_original(self, key):
        """Test the unwrapped key encrypts/decrypts like the original."""
        kwrap = derive_wrap_key("cred-1", "u1")
        recovered = unwrap_master_key(kwrap, wrap_master_key(kwrap, key))
        assert recovered == key
        assert decrypt_field(recovered, encrypt_field(key, "hunter2")) == "hunter2"
        assert decrypt_field(key, encrypt_field(recovered, "hunter2")) == "hunter2"

    def test_blob_uses_12_byte_iv(self, key):
        """Test the wrapped blob is 12-byte IV + 32-byte key + tag."""
        blob = wrap_master_key(derive_wrap_key("cred-1", "u1"), key)
        assert len(base64.b64decode(blob)) == WRAP_IV_SIZE + 32 + 16

    def test_wrong_credential_fails(self, key):
        """Test a different credential cannot unwrap."""
        blob = wrap_master_key(derive_wrap_key("cred-1", "u1"), key)
        with pytest.raises(PasskeyUnlockFailedError):
            unwrap_master_key(derive_wrap_key("cred-2", "u1"), blob)

    def test_malformed_blob_fails(self):
        """Test a malformed blob surfaces as PasskeyUnlockFailedError."""
        with pytest.raises(PasskeyUnlockFailedError):
            unwrap_master_key(derive_wrap_key("cred-1", "u1"), "!!")

    def test_wiped_master_key_cannot_be_wrapped(self, key):
        """Test wrapping a wiped key fails."""
        key.wipe()
        with pytest.raises(PasskeyUnlockFailedError):
            wrap_master_key(derive_wrap_key("cred-1", "u1"), key)
