"""Tests for check-value encryption and verification."""
from zk_vault.vault.check_value import encrypt_check, verify_check
from zk_vault.vault.crypto import decrypt_field


class TestCheckValue:
    """verify_check is a boolean oracle that never raises."""

    def test_plaintext_is_user_id(self, key):
        """Test the check value decrypts to the user id."""
        assert decrypt_field(key, encrypt_check(key, "u1")) == "u1"

    def test_same_key_verifies(self, key):
        """Test the key that produced the check value verifies it."""
        assert verify_check(key, encrypt_check(key, "u1"), "u1") is True

    def test_wrong_key_returns_false(self, key, other_key):
        """Test a different key returns False instead of raising."""
        assert verify_check(other_key, encrypt_check(key, "u1"), "u1") is False

    def test_other_user_returns_false(self, key):
        """Test a check value for another user does not verify."""
        assert verify_check(key, encrypt_check(key, "u1"), "u2") is False

    def test_malformed_blob_returns_false(self, key):
        """Test garbage input returns False."""
        assert verify_check(key, "%%%not-a-blob%%%", "u1") is False

    def test_missing_blob_returns_false(self, key):
        """Test None / empty check values return False."""
        assert verify_check(key, None, "u1") is False
        assert verify_check(key, "", "u1") is False
