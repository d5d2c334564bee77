"""
Vault Salt Migration — Batch re-encryption of field blobs under a new master key.

Moving a vault from the deterministic (version 1) salt to a random (version 2)
salt changes the derived master key, so every stored field blob has to be
re-encrypted. Records are processed in batches; a record that fails is left
untouched and counted, so the migration can be re-run.

Security Note:
    Plaintext exists in memory only during re-encryption of each field.
    Never log plaintext or ciphertext values.
"""
import asyncio
import logging
from typing import Any
from collections.abc import Iterable, Sequence

from ..exceptions import AuthenticationFailureError, MalformedInputError
from .crypto import MasterKey, decrypt_field, encrypt_field
from .documents import should_encrypt

logger = logging.getLogger("zk_vault")


def reencrypt_record(
    record: dict[str, Any],
    fields: Iterable[str],
    old_key: MasterKey,
    new_key: MasterKey,
) -> dict[str, Any]:
    """Return a copy of ``record`` with every encrypted field re-encrypted.

    Raises:
        AuthenticationFailureError: If a field was not encrypted under old_key.
        MalformedInputError: If a field is not a valid blob.
    """
    updated = dict(record)
    for field in fields:
        blob = updated.get(field)
        if not should_encrypt(blob):
            continue
        updated[field] = encrypt_field(new_key, decrypt_field(old_key, blob))
    return updated


async def migrate_records(
    records: Sequence[dict[str, Any]],
    fields: Iterable[str],
    old_key: MasterKey,
    new_key: MasterKey,
    batch_size: int = 100,
) -> tuple[list[dict[str, Any]], dict]:
    """Re-encrypt records from old_key to new_key in batches.

    Args:
        records: Stored documents holding encrypted fields.
        fields: Names of the encrypted fields.
        old_key: Master key the records are currently encrypted with.
        new_key: Master key to re-encrypt with.
        batch_size: Number of records processed before yielding to the loop.

    Returns:
        Tuple of (records, stats). Records that failed are returned
        unchanged. Stats dict has keys: total, migrated, errors.

    Raises:
        ValueError: If batch_size is not positive.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    fields = tuple(fields)
    stats = {"total": 0, "migrated": 0, "errors": 0}
    migrated: list[dict[str, Any]] = []

    logger.info(
        "Starting salt migration of %d record(s) (batch_size=%d)",
        len(records), batch_size,
    )

    for offset in range(0, len(records), batch_size):
        batch = records[offset:offset + batch_size]
        batch_num = (offset // batch_size) + 1
        logger.info("Processing batch %d (%d records)", batch_num, len(batch))
        for record in batch:
            stats["total"] += 1
            try:
                migrated.append(
                    reencrypt_record(record, fields, old_key, new_key)
                )
                stats["migrated"] += 1
            except (AuthenticationFailureError, MalformedInputError) as err:
                logger.error(
                    "Error migrating record id=%s: %s", record.get("id"), err,
                )
                migrated.append(dict(record))
                stats["errors"] += 1
        await asyncio.sleep(0)

    logger.info("Salt migration complete: %s", stats)
    return migrated, stats
