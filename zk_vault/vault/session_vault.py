"""
VaultSession — The in-memory master key and its lock/unlock state machine.

Provides the public API of the vault core:
- ``unlock(password, user_id, is_first_time)`` — derive and verify the key
- ``unlock_with_wrapped_key()`` / ``unlock_with_passkey()`` — passkey unlock
- ``lock()`` — zero the key and return to Locked (idempotent)
- ``is_unlocked()`` / ``tick_timeout()`` — inactivity timeout
- ``encrypt_field()`` / ``decrypt_field()`` / ``decrypt_fields()`` — field use
- ``change_master_password()`` — re-key the vault, optionally re-encrypting records

Security Note:
    Never log passwords, key material, plaintext or ciphertext values. Only
    log user ids, credential ids and state transitions. The master key lives
    in process memory while Unlocked; this is an accepted limitation (see
    the threat model in ``__init__.py``).

The ``vault_unlocked`` session marker is a mirror of the in-memory activity
timestamp, written on unlock and activity and deleted on lock, for external
observers such as other tabs. It is never read back: a tampered or missing
marker cannot extend or end a session.
"""
import time
import asyncio
import logging
import contextlib
from typing import Any, Callable, Optional
from collections.abc import Iterable, Mapping, Sequence

from ..exceptions import (
    AuthenticationFailureError,
    PasskeyUnlockFailedError,
    VaultLockedError,
)
from . import crypto
from .check_value import encrypt_check, verify_check
from .config import VaultConfig, VaultPreferences
from .migration import migrate_records
from .models import Decrypted, Failed, FieldResult, VaultState
from .passkey import derive_wrap_key, unwrap_master_key, wrap_master_key
from .storage import MarkerStore, MemoryMarkerStore, UNLOCK_MARKER_KEY, VaultStore

logger = logging.getLogger("zk_vault")


class VaultSession:
    """Owner of the master key for one process or application context.

    Construct one on application start, pass it to whatever needs field
    encryption, and ``lock()`` it on logout.

    State transitions (unlock, lock, timeout eviction) are serialized by a
    single asyncio lock. Field encryption and decryption take no lock: the
    cipher is stateless given a fresh IV.

    ``is_unlocked()`` is a pure predicate. Eviction happens in
    ``tick_timeout()``, called by the watchdog and lazily before every
    field operation.
    """

    def __init__(
        self,
        store: VaultStore,
        markers: Optional[MarkerStore] = None,
        preferences: Optional[VaultPreferences] = None,
        config: Optional[VaultConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or VaultConfig()
        self._store = store
        self._markers = markers if markers is not None else MemoryMarkerStore()
        self._preferences = preferences or VaultPreferences(
            default_timeout=self._config.timeout_minutes
        )
        self._clock = clock
        self._state = VaultState.LOCKED
        self._key: Optional[crypto.MasterKey] = None
        self._user_id: Optional[str] = None
        self._last_activity: Optional[float] = None
        self._transition = asyncio.Lock()
        self._lock_listeners: list[Callable[[], Any]] = []

    def __repr__(self) -> str:
        return f"<VaultSession state={self._state.value} user={self._user_id!r}>"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def last_activity(self) -> Optional[float]:
        return self._last_activity

    @property
    def preferences(self) -> VaultPreferences:
        return self._preferences

    @property
    def config(self) -> VaultConfig:
        return self._config

    # ------------------------------------------------------------------
    # Lock listeners
    # ------------------------------------------------------------------

    def add_lock_listener(self, callback: Callable[[], Any]) -> None:
        """Register a callback run after every transition to Locked.

        Views holding decrypted values use it to drop them.
        """
        self._lock_listeners.append(callback)

    def remove_lock_listener(self, callback: Callable[[], Any]) -> None:
        with contextlib.suppress(ValueError):
            self._lock_listeners.remove(callback)

    def _notify_locked(self) -> None:
        for callback in list(self._lock_listeners):
            try:
                callback()
            except Exception:
                logger.exception("Vault lock listener %r failed", callback)

    # ------------------------------------------------------------------
    # Internal transitions (caller holds self._transition)
    # ------------------------------------------------------------------

    def _stamp(self, now: float) -> None:
        self._last_activity = now
        self._markers.set(UNLOCK_MARKER_KEY, str(int(now * 1000)))

    def _adopt(self, key: crypto.MasterKey, user_id: str) -> None:
        if self._key is not None and self._key is not key:
            self._key.wipe()
        self._key = key
        self._user_id = user_id
        self._state = VaultState.UNLOCKED
        self._stamp(self._clock())

    def _evict(self) -> bool:
        if self._state is VaultState.LOCKED and self._key is None:
            return False
        if self._key is not None:
            self._key.wipe()
        user_id = self._user_id
        self._key = None
        self._user_id = None
        self._last_activity = None
        self._state = VaultState.LOCKED
        self._markers.delete(UNLOCK_MARKER_KEY)
        logger.info("Vault locked: user=%s", user_id)
        self._notify_locked()
        return True

    def _expired(self) -> bool:
        if self._state is not VaultState.UNLOCKED or self._last_activity is None:
            return False
        elapsed = self._clock() - self._last_activity
        return elapsed >= self._preferences.timeout_seconds

    # ------------------------------------------------------------------
    # Unlock / lock
    # ------------------------------------------------------------------

    async def unlock(
        self, password: str, user_id: str, is_first_time: bool = False
    ) -> bool:
        """Derive the master key from a password and unlock the vault.

        On first-time setup there is nothing to verify against: a fresh check
        value is persisted and the vault unlocks. A salt record already in
        the store is reused, so repeating setup with the same password keeps
        existing ciphertext readable; one is created only when none exists.
        Otherwise the derived key must decrypt the stored check value.

        Args:
            password: Master password.
            user_id: Canonical user identifier.
            is_first_time: True when setting up the vault.

        Returns:
            True if unlocked, False on a wrong password or when no check
            value exists yet.

        Raises:
            Whatever the store raises on I/O failure.
        """
        async with self._transition:
            record = await self._store.get_salt_record(user_id)
            new_record = is_first_time and record is None
            if new_record:
                record = crypto.new_salt_record(self._config.salt_version)
            key = await crypto.derive_key_async(
                password, crypto.resolve_salt(record, user_id)
            )
            adopted = False
            try:
                if is_first_time:
                    if new_record:
                        await self._store.set_salt_record(user_id, record)
                    await self._store.set_check_value(
                        user_id, encrypt_check(key, user_id)
                    )
                    logger.info(
                        "Vault created: user=%s salt_version=%d",
                        user_id, record.salt_version,
                    )
                else:
                    blob = await self._store.get_check_value(user_id)
                    if not verify_check(key, blob, user_id):
                        logger.info("Vault unlock rejected: user=%s", user_id)
                        return False
                self._adopt(key, user_id)
                adopted = True
            finally:
                if not adopted:
                    key.wipe()
        logger.info("Vault unlocked: user=%s", user_id)
        return True

    async def unlock_with_wrapped_key(
        self, blob: str, credential_id: str, user_id: str
    ) -> bool:
        """Unlock with a passkey-wrapped master key.

        The check value is not re-verified: the passkey ceremony already
        proved possession of the credential.

        Returns:
            True if unlocked; False if the blob could not be unwrapped, in
            which case the caller falls back to the password flow.
        """
        async with self._transition:
            kwrap = derive_wrap_key(credential_id, user_id)
            try:
                key = unwrap_master_key(kwrap, blob)
            except PasskeyUnlockFailedError as err:
                logger.warning(
                    "Passkey unlock failed: user=%s credential=%s: %s",
                    user_id, credential_id, err,
                )
                return False
            finally:
                kwrap.wipe()
            self._adopt(key, user_id)
        logger.info(
            "Vault unlocked with passkey: user=%s credential=%s",
            user_id, credential_id,
        )
        return True

    async def unlock_with_passkey(self, credential_id: str, user_id: str) -> bool:
        """Fetch the wrapped key for a credential and unlock with it."""
        blob = await self._store.get_wrapped_key(user_id, credential_id)
        if not blob:
            logger.info(
                "No wrapped key stored: user=%s credential=%s",
                user_id, credential_id,
            )
            return False
        return await self.unlock_with_wrapped_key(blob, credential_id, user_id)

    async def lock(self) -> None:
        """Zero the master key and return to Locked. No-op when locked."""
        async with self._transition:
            self._evict()

    # ------------------------------------------------------------------
    # Timeout
    # ------------------------------------------------------------------

    def is_unlocked(self) -> bool:
        """True while Unlocked and within the inactivity timeout.

        Pure predicate: an expired session reports False but keeps its key
        until ``tick_timeout()`` evicts it.
        """
        if self._state is not VaultState.UNLOCKED or self._key is None:
            return False
        return not self._expired()

    async def tick_timeout(self) -> bool:
        """Lock the vault if the inactivity timeout has elapsed.

        Returns:
            True if this call evicted the key.
        """
        if not self._expired():
            return False
        async with self._transition:
            if not self._expired():
                return False
            logger.info(
                "Vault inactivity timeout (%d min): user=%s",
                self._preferences.timeout_minutes, self._user_id,
            )
            return self._evict()

    async def ensure_unlocked(self) -> crypto.MasterKey:
        """Evict on timeout, then return the key.

        Raises:
            VaultLockedError: If the vault is locked.
        """
        await self.tick_timeout()
        if not self.is_unlocked():
            raise VaultLockedError("Vault is locked")
        return self._key

    def touch_activity(self) -> None:
        """Refresh the activity timestamp, at most once per throttle window.

        No-op while locked or already expired.
        """
        if not self.is_unlocked():
            return
        now = self._clock()
        if (
            self._last_activity is not None
            and now - self._last_activity < self._config.activity_throttle
        ):
            return
        self._stamp(now)

    # ------------------------------------------------------------------
    # Field encryption
    # ------------------------------------------------------------------

    async def encrypt_field(self, plaintext: str) -> str:
        """Encrypt a field value with the session's master key.

        Raises:
            VaultLockedError: If the vault is locked or timed out.
            EmptyInputError: If plaintext is None or blank.
        """
        key = await self.ensure_unlocked()
        return crypto.encrypt_field(key, plaintext)

    async def decrypt_field(self, blob: str) -> str:
        """Decrypt a field value with the session's master key.

        Raises:
            VaultLockedError: If the vault is locked or timed out.
            AuthenticationFailureError: Wrong key or corrupted data.
            MalformedInputError: Not base64 or too short.
        """
        key = await self.ensure_unlocked()
        return crypto.decrypt_field(key, blob)

    async def decrypt_fields(self, blobs: Mapping[str, str]) -> dict[str, FieldResult]:
        """Decrypt many fields, tolerating per-field authentication failures.

        A field whose tag does not verify becomes ``Failed``; the rest of the
        batch still decrypts. Malformed blobs and a locked vault raise.
        """
        key = await self.ensure_unlocked()
        results: dict[str, FieldResult] = {}
        failed = 0
        for field, blob in blobs.items():
            try:
                results[field] = Decrypted(value=crypto.decrypt_field(key, blob))
            except AuthenticationFailureError:
                logger.warning("Failed to decrypt field=%s", field)
                results[field] = Failed(field=field)
                failed += 1
        if failed:
            logger.warning(
                "Bulk decrypt: %d of %d field(s) undecryptable", failed, len(blobs),
            )
        return results

    # ------------------------------------------------------------------
    # Master password and passkey management
    # ------------------------------------------------------------------

    async def has_master_password(self, user_id: str) -> bool:
        """True if a check value exists, i.e. the vault was set up."""
        return bool(await self._store.get_check_value(user_id))

    async def verify_password(self, password: str) -> bool:
        """Re-check the current user's password without changing state.

        Used to confirm sensitive actions while Unlocked.

        Raises:
            VaultLockedError: If the vault is locked.
        """
        await self.ensure_unlocked()
        user_id = self._user_id
        record = await self._store.get_salt_record(user_id)
        candidate = await crypto.derive_key_async(
            password, crypto.resolve_salt(record, user_id)
        )
        try:
            blob = await self._store.get_check_value(user_id)
            return verify_check(candidate, blob, user_id)
        finally:
            candidate.wipe()

    async def reset_master_password(self, user_id: str) -> None:
        """Lock and forget the check value and salt; setup must run again.

        Existing ciphertext becomes unreadable unless the same password and
        salt are chosen again.
        """
        await self.lock()
        await self._store.clear_check_value(user_id)
        await self._store.clear_salt_record(user_id)
        logger.warning("Vault master password reset: user=%s", user_id)

    async def change_master_password(
        self,
        new_password: str,
        salt_version: Optional[int] = None,
        records: Sequence[dict[str, Any]] = (),
        fields: Iterable[str] = (),
        credential_ids: Iterable[str] = (),
    ) -> tuple[list[dict[str, Any]], dict]:
        """Re-key the vault under a new password and a fresh salt record.

        Records are re-encrypted from the current key to the new one before
        anything is persisted. The caller writes the returned records back
        to its document store. Passing the same password with
        ``salt_version=2`` moves a version-1 vault to a random salt.

        Passkey-wrapped keys hold the old key; the credentials listed in
        ``credential_ids`` are re-wrapped, any other passkey stops working.

        Args:
            new_password: The new master password.
            salt_version: Salt scheme for the new record; defaults to
                ``VaultConfig.salt_version``.
            records: Stored documents encrypted under the current key.
            fields: Names of the encrypted fields in ``records``.
            credential_ids: Passkey credentials to re-wrap.

        Returns:
            Tuple of (records, stats) as produced by ``migrate_records``.

        Raises:
            VaultLockedError: If the vault is locked.
            AuthenticationFailureError: If any record could not be
                re-encrypted. Nothing is persisted and the current key stays.
        """
        await self.ensure_unlocked()
        async with self._transition:
            if not self.is_unlocked():
                raise VaultLockedError("Vault is locked")
            user_id = self._user_id
            record = crypto.new_salt_record(
                salt_version or self._config.salt_version
            )
            new_key = await crypto.derive_key_async(
                new_password, crypto.resolve_salt(record, user_id)
            )
            adopted = False
            try:
                migrated, stats = await migrate_records(
                    records, fields, self._key, new_key,
                )
                if stats["errors"]:
                    raise AuthenticationFailureError(
                        f"{stats['errors']} record(s) could not be re-encrypted;"
                        " master password not changed"
                    )
                await self._store.set_salt_record(user_id, record)
                await self._store.set_check_value(
                    user_id, encrypt_check(new_key, user_id)
                )
                for credential_id in credential_ids:
                    kwrap = derive_wrap_key(credential_id, user_id)
                    try:
                        blob = wrap_master_key(kwrap, new_key)
                    finally:
                        kwrap.wipe()
                    await self._store.set_wrapped_key(user_id, credential_id, blob)
                self._adopt(new_key, user_id)
                adopted = True
            finally:
                if not adopted:
                    new_key.wipe()
        logger.info(
            "Vault master password changed: user=%s salt_version=%d",
            user_id, record.salt_version,
        )
        return migrated, stats

    async def enable_passkey(self, credential_id: str) -> str:
        """Wrap the current master key for a passkey credential and store it.

        Returns:
            The PasskeyWrappedKey blob.

        Raises:
            VaultLockedError: If the vault is locked.
        """
        key = await self.ensure_unlocked()
        user_id = self._user_id
        kwrap = derive_wrap_key(credential_id, user_id)
        try:
            blob = wrap_master_key(kwrap, key)
        finally:
            kwrap.wipe()
        await self._store.set_wrapped_key(user_id, credential_id, blob)
        logger.info(
            "Passkey enabled: user=%s credential=%s", user_id, credential_id,
        )
        return blob

    async def disable_passkey(
        self, credential_id: str, user_id: Optional[str] = None
    ) -> None:
        """Remove the wrapped key stored for a passkey credential.

        Does not need the master key. ``user_id`` defaults to the unlocked
        session's user, so a locked vault must name the user explicitly.

        Raises:
            VaultLockedError: If no user_id is given and no user is unlocked.
        """
        user_id = user_id or self._user_id
        if user_id is None:
            raise VaultLockedError("No user given and the vault is locked")
        await self._store.clear_wrapped_key(user_id, credential_id)
        logger.info(
            "Passkey disabled: user=%s credential=%s", user_id, credential_id,
        )


class VaultWatchdog:
    """Periodic task that enforces the inactivity timeout.

    Complements the lazy check done before each field operation so an idle
    vault is locked even if nothing touches it.
    """

    def __init__(self, session: VaultSession, interval: Optional[float] = None):
        self._session = session
        self._interval = interval or session.config.watchdog_interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._session.tick_timeout()
            except Exception:
                logger.exception("Vault watchdog tick failed")
