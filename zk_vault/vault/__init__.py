"""Zero-knowledge vault — Password-derived master key bound to a session.

Security Note (Threat Model):
    The master key exists only in process memory while the session is
    Unlocked, and is zeroed (best effort) on lock or timeout. A memory dump
    of the process while Unlocked could expose it. This is an accepted
    limitation. Only ciphertext, check values and wrapped keys are ever
    handed to the persistence port.
"""

from .crypto import (
    MasterKey,
    WrapKey,
    derive_key,
    derive_key_async,
    encrypt_field,
    decrypt_field,
    user_salt,
)
from .check_value import encrypt_check, verify_check
from .passkey import derive_wrap_key, wrap_master_key, unwrap_master_key
from .models import (
    Decrypted,
    Failed,
    FieldResult,
    SaltRecord,
    VaultState,
    SALT_V1_DETERMINISTIC,
    SALT_V2_RANDOM,
)
from .config import VaultConfig, VaultPreferences
from .storage import (
    VaultStore,
    MarkerStore,
    MemoryVaultStore,
    MemoryMarkerStore,
    PostgresVaultStore,
)
from .session_vault import VaultSession, VaultWatchdog
from .documents import ENCRYPTED_FIELDS, encrypt_document, decrypt_document
from .migration import migrate_records

__all__ = [
    "MasterKey",
    "WrapKey",
    "derive_key",
    "derive_key_async",
    "encrypt_field",
    "decrypt_field",
    "user_salt",
    "encrypt_check",
    "verify_check",
    "derive_wrap_key",
    "wrap_master_key",
    "unwrap_master_key",
    "Decrypted",
    "Failed",
    "FieldResult",
    "SaltRecord",
    "VaultState",
    "SALT_V1_DETERMINISTIC",
    "SALT_V2_RANDOM",
    "VaultConfig",
    "VaultPreferences",
    "VaultStore",
    "MarkerStore",
    "MemoryVaultStore",
    "MemoryMarkerStore",
    "PostgresVaultStore",
    "VaultSession",
    "VaultWatchdog",
    "ENCRYPTED_FIELDS",
    "encrypt_document",
    "decrypt_document",
    "migrate_records",
]
