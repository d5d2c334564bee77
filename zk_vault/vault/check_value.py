"""
Check Value — Encrypted sentinel used to test a candidate master key.

The check value is the user id encrypted under the master key at setup
time. It says nothing about data confidentiality; it only tells whether a
newly derived key is the same key used before.
"""
import hmac
import logging
from typing import Optional

from ..exceptions import AuthenticationFailureError, MalformedInputError
from .crypto import EncryptedBlob, MasterKey, decrypt_field, encrypt_field

logger = logging.getLogger("zk_vault")


def encrypt_check(key: MasterKey, user_id: str) -> EncryptedBlob:
    """Encrypt the user id as the check value for ``key``."""
    return encrypt_field(key, user_id)


def verify_check(
    key: MasterKey, blob: Optional[EncryptedBlob], user_id: str
) -> bool:
    """Tell whether ``key`` is the key that produced ``blob``.

    This is a boolean oracle: a wrong password is the common case, so
    decryption failures and mismatches return ``False`` instead of raising.
    """
    if not blob:
        return False
    try:
        plaintext = decrypt_field(key, blob)
    except (AuthenticationFailureError, MalformedInputError) as err:
        logger.debug("Check value rejected: %s", type(err).__name__)
        return False
    return hmac.compare_digest(
        plaintext.encode("utf-8"), user_id.encode("utf-8")
    )
