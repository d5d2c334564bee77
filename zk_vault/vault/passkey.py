"""
Passkey Key Wrap — Wrap the master key under a key derived from a passkey.

Kwrap = SHA-256(credential_id || user_id), used as an AES-256-GCM key.
Wrapped blob format: base64([iv 12B][raw master key encrypted + tag 16B])

Security Note:
    Kwrap is derived without a KDF from public-ish material. It is only
    acceptable because the platform authenticator gates who can present
    the credential id (hardware-backed user presence/verification).
"""
import hashlib
import logging

from ..exceptions import (
    AuthenticationFailureError,
    MalformedInputError,
    PasskeyUnlockFailedError,
)
from .crypto import (
    KEY_LENGTH,
    MasterKey,
    WrapKey,
    aead_decrypt,
    aead_encrypt,
)

logger = logging.getLogger("zk_vault")

WRAP_IV_SIZE = 12  # 96-bit nonce

PasskeyWrappedKey = str


def derive_wrap_key(credential_id: str, user_id: str) -> WrapKey:
    """Derive the wrapping key for a passkey credential."""
    seed = hashlib.sha256((credential_id + user_id).encode("utf-8")).digest()
    return WrapKey(seed)


def wrap_master_key(kwrap: WrapKey, master_key: MasterKey) -> PasskeyWrappedKey:
    """Encrypt the raw master key under ``kwrap``.

    Raises:
        PasskeyUnlockFailedError: If either key is unusable.
    """
    try:
        return aead_encrypt(kwrap, master_key.export(), WRAP_IV_SIZE)
    except ValueError as err:
        raise PasskeyUnlockFailedError(f"Cannot wrap master key: {err}") from err


def unwrap_master_key(kwrap: WrapKey, blob: PasskeyWrappedKey) -> MasterKey:
    """Recover the master key from a passkey-wrapped blob.

    Raises:
        PasskeyUnlockFailedError: On tag mismatch, malformed blob or a
            recovered key of the wrong length.
    """
    try:
        raw = aead_decrypt(kwrap, blob, WRAP_IV_SIZE)
    except (AuthenticationFailureError, MalformedInputError) as err:
        logger.debug("Passkey unwrap rejected: %s", type(err).__name__)
        raise PasskeyUnlockFailedError(
            f"Passkey unwrap failed: {err}"
        ) from err
    if len(raw) != KEY_LENGTH:
        raise PasskeyUnlockFailedError(
            f"Unwrapped key has {len(raw)} bytes, expected {KEY_LENGTH}"
        )
    return MasterKey(raw)
