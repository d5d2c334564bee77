"""
Vault Storage Ports — Persistence and session-marker collaborators.

The vault core never talks to a document store directly. It is handed:

- a ``VaultStore`` holding the check value, salt record and passkey-wrapped
  keys for each user (remote, durable);
- a ``MarkerStore`` holding the unlock/activity timestamp (tab-scoped,
  non-durable, cleared on lock). The marker mirrors the session's
  in-memory activity timestamp for external observers such as other tabs
  or a UI badge. The session writes it but never reads it back: the
  timeout is decided from memory only.

Security Note:
    Only ciphertext (check values, wrapped keys) and public salts cross
    these ports. The session marker is a UX convenience, not a secret and
    not a security boundary.
"""
import logging
from typing import Any, Optional, Protocol

import orjson

from .models import SaltRecord

logger = logging.getLogger("zk_vault")

UNLOCK_MARKER_KEY = "vault_unlocked"


class VaultStore(Protocol):
    """Persistence port implemented by the remote document store."""

    async def get_check_value(self, user_id: str) -> Optional[str]: ...

    async def set_check_value(self, user_id: str, blob: str) -> None: ...

    async def clear_check_value(self, user_id: str) -> None: ...

    async def get_salt_record(self, user_id: str) -> Optional[SaltRecord]: ...

    async def set_salt_record(self, user_id: str, record: SaltRecord) -> None: ...

    async def clear_salt_record(self, user_id: str) -> None: ...

    async def get_wrapped_key(
        self, user_id: str, credential_id: str
    ) -> Optional[str]: ...

    async def set_wrapped_key(
        self, user_id: str, credential_id: str, blob: str
    ) -> None: ...

    async def clear_wrapped_key(self, user_id: str, credential_id: str) -> None: ...


class MarkerStore(Protocol):
    """Tab-scoped, non-durable key/value store."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryMarkerStore:
    """Process-local session marker store."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class MemoryVaultStore:
    """In-process ``VaultStore``, for embedding and tests."""

    def __init__(self):
        self._checks: dict[str, str] = {}
        self._salts: dict[str, SaltRecord] = {}
        self._wrapped: dict[tuple[str, str], str] = {}

    async def get_check_value(self, user_id: str) -> Optional[str]:
        return self._checks.get(user_id)

    async def set_check_value(self, user_id: str, blob: str) -> None:
        self._checks[user_id] = blob

    async def clear_check_value(self, user_id: str) -> None:
        self._checks.pop(user_id, None)

    async def get_salt_record(self, user_id: str) -> Optional[SaltRecord]:
        return self._salts.get(user_id)

    async def set_salt_record(self, user_id: str, record: SaltRecord) -> None:
        self._salts[user_id] = record

    async def clear_salt_record(self, user_id: str) -> None:
        self._salts.pop(user_id, None)

    async def get_wrapped_key(
        self, user_id: str, credential_id: str
    ) -> Optional[str]:
        return self._wrapped.get((user_id, credential_id))

    async def set_wrapped_key(
        self, user_id: str, credential_id: str, blob: str
    ) -> None:
        self._wrapped[(user_id, credential_id)] = blob

    async def clear_wrapped_key(self, user_id: str, credential_id: str) -> None:
        self._wrapped.pop((user_id, credential_id), None)


# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_KEYCHAIN = """
SELECT check_value, salt_record
FROM auth.user_vault_keychain
WHERE user_id = $1
"""

_UPSERT_CHECK = """
INSERT INTO auth.user_vault_keychain (user_id, check_value)
VALUES ($1, $2)
ON CONFLICT (user_id)
DO UPDATE SET check_value = EXCLUDED.check_value, updated_at = NOW()
"""

_UPSERT_SALT = """
INSERT INTO auth.user_vault_keychain (user_id, salt_record)
VALUES ($1, $2)
ON CONFLICT (user_id)
DO UPDATE SET salt_record = EXCLUDED.salt_record, updated_at = NOW()
"""

_CLEAR_CHECK = """
UPDATE auth.user_vault_keychain
SET check_value = NULL, updated_at = NOW()
WHERE user_id = $1
"""

_CLEAR_SALT = """
UPDATE auth.user_vault_keychain
SET salt_record = NULL, updated_at = NOW()
WHERE user_id = $1
"""

_SELECT_WRAPPED = """
SELECT wrapped_key
FROM auth.user_vault_passkeys
WHERE user_id = $1 AND credential_id = $2 AND deleted_at IS NULL
"""

_UPSERT_WRAPPED = """
INSERT INTO auth.user_vault_passkeys (user_id, credential_id, wrapped_key)
VALUES ($1, $2, $3)
ON CONFLICT (user_id, credential_id) WHERE deleted_at IS NULL
DO UPDATE SET wrapped_key = EXCLUDED.wrapped_key, updated_at = NOW()
"""

_SOFT_DELETE_WRAPPED = """
UPDATE auth.user_vault_passkeys
SET deleted_at = NOW()
WHERE user_id = $1 AND credential_id = $2 AND deleted_at IS NULL
"""

_INSERT_AUDIT = """
INSERT INTO auth.user_vault_audit (user_id, key, operation, key_version, session_id)
VALUES ($1, $2, $3, $4, $5)
"""


class PostgresVaultStore:
    """``VaultStore`` backed by an asyncpg-compatible connection pool.

    Every write also records an audit row (operation name and user only,
    never the blob).
    """

    def __init__(self, db_pool: Any, session_id: Optional[str] = None):
        self._db = db_pool
        self._session_id = session_id

    async def _audit(self, conn: Any, user_id: str, key: str, operation: str) -> None:
        """Insert an audit log entry."""
        await conn.execute(
            _INSERT_AUDIT, user_id, key, operation, None, self._session_id,
        )

    async def _fetch_keychain(self, user_id: str) -> Optional[Any]:
        async with self._db.acquire() as conn:
            return await conn.fetchrow(_SELECT_KEYCHAIN, user_id)

    async def get_check_value(self, user_id: str) -> Optional[str]:
        row = await self._fetch_keychain(user_id)
        return row["check_value"] if row else None

    async def set_check_value(self, user_id: str, blob: str) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_UPSERT_CHECK, user_id, blob)
            await self._audit(conn, user_id, "check", "set")
        logger.debug("Vault check value stored: user=%s", user_id)

    async def clear_check_value(self, user_id: str) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_CLEAR_CHECK, user_id)
            await self._audit(conn, user_id, "check", "clear")
        logger.debug("Vault check value cleared: user=%s", user_id)

    async def get_salt_record(self, user_id: str) -> Optional[SaltRecord]:
        row = await self._fetch_keychain(user_id)
        if not row or row["salt_record"] is None:
            return None
        return SaltRecord.model_validate(orjson.loads(row["salt_record"]))

    async def set_salt_record(self, user_id: str, record: SaltRecord) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(
                _UPSERT_SALT, user_id, orjson.dumps(record.model_dump()).decode(),
            )
            await self._audit(conn, user_id, "salt", "set")

    async def clear_salt_record(self, user_id: str) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_CLEAR_SALT, user_id)
            await self._audit(conn, user_id, "salt", "clear")
        logger.debug("Vault salt record cleared: user=%s", user_id)

    async def get_wrapped_key(
        self, user_id: str, credential_id: str
    ) -> Optional[str]:
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_WRAPPED, user_id, credential_id)
        return row["wrapped_key"] if row else None

    async def set_wrapped_key(
        self, user_id: str, credential_id: str, blob: str
    ) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_UPSERT_WRAPPED, user_id, credential_id, blob)
            await self._audit(conn, user_id, f"passkey:{credential_id}", "set")
        logger.debug(
            "Vault passkey stored: user=%s credential=%s", user_id, credential_id,
        )

    async def clear_wrapped_key(self, user_id: str, credential_id: str) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_SOFT_DELETE_WRAPPED, user_id, credential_id)
            await self._audit(conn, user_id, f"passkey:{credential_id}", "delete")
        logger.debug(
            "Vault passkey removed: user=%s credential=%s", user_id, credential_id,
        )
