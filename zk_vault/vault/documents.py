"""
Document Fields — Which fields of each collection are encrypted client-side.

The document store itself is external; these helpers only transform a
document mapping before it is written and after it is read.
"""
import logging
from typing import TYPE_CHECKING, Any

from .models import Failed, FieldResult

if TYPE_CHECKING:
    from .session_vault import VaultSession

logger = logging.getLogger("zk_vault")

ENCRYPTED_FIELDS: dict[str, tuple[str, ...]] = {
    "credentials": (
        "name",
        "url",
        "username",
        "password",
        "notes",
        "customFields",
        "cardNumber",
        "cardholderName",
        "cardExpiry",
        "cardCVV",
        "cardPIN",
    ),
    "totp_secrets": (
        "issuer",
        "accountName",
        "secretKey",
        "url",
    ),
    "folders": ("name",),
    "security_logs": (
        "ipAddress",
        "userAgent",
        "deviceFingerprint",
        "details",
    ),
    "user": (
        "email",
        "twofaSecret",
        "backupCodes",
        "credentialId",
        "publicKey",
        "sessionFingerprint",
    ),
}


def encrypted_fields(collection: str) -> tuple[str, ...]:
    """Return the encrypted field names of a collection.

    Raises:
        KeyError: If the collection is unknown.
    """
    try:
        return ENCRYPTED_FIELDS[collection]
    except KeyError:
        raise KeyError(f"Unknown collection: {collection}") from None


def should_encrypt(value: Any) -> bool:
    """Only non-empty strings are encrypted; anything else is stored as-is."""
    return isinstance(value, str) and bool(value.strip())


async def encrypt_document(
    session: "VaultSession", collection: str, doc: dict[str, Any]
) -> dict[str, Any]:
    """Return a copy of ``doc`` with its sensitive fields encrypted.

    Blank strings become None so the store never holds an encrypted empty
    value.

    Raises:
        VaultLockedError: If the vault is locked.
    """
    result = dict(doc)
    for field in encrypted_fields(collection):
        if field not in result:
            continue
        value = result[field]
        if should_encrypt(value):
            result[field] = await session.encrypt_field(value)
        elif isinstance(value, str):
            result[field] = None
    return result


async def decrypt_document(
    session: "VaultSession", collection: str, doc: dict[str, Any]
) -> dict[str, Any]:
    """Return a copy of ``doc`` with its sensitive fields decrypted.

    While locked the document is returned unchanged (still encrypted).
    Fields that fail authentication are replaced by a ``Failed`` marker;
    missing or empty fields become None.
    """
    result = dict(doc)
    await session.tick_timeout()
    if not session.is_unlocked():
        logger.warning(
            "Vault is locked, returning %s document still encrypted", collection,
        )
        return result
    blobs: dict[str, str] = {}
    for field in encrypted_fields(collection):
        value = result.get(field)
        if should_encrypt(value):
            blobs[field] = value
        elif field in result:
            result[field] = value if value else None
    decrypted: dict[str, FieldResult] = await session.decrypt_fields(blobs)
    for field, outcome in decrypted.items():
        result[field] = outcome if isinstance(outcome, Failed) else outcome.value
    return result
