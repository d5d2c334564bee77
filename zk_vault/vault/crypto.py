"""
Vault Crypto Core — Key derivation, field encryption/decryption and serialization.

- Key derivation: PBKDF2-HMAC-SHA256(password, salt, 600k) → 32-byte AES-256 key
- Field layer: AES-256-GCM → base64([iv 16B][encrypted_payload + GCM_tag 16B])

Security Note:
    Never log passwords, key material, plaintext or ciphertext values.
    IVs are random 128-bit; a fresh IV is drawn for every encryption.
"""
import os
import hmac
import base64
import asyncio
import binascii
import hashlib
import logging

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import (
    AuthenticationFailureError,
    EmptyInputError,
    MalformedInputError,
)
from .models import SaltRecord, SALT_V1_DETERMINISTIC, SALT_V2_RANDOM

logger = logging.getLogger("zk_vault")

PBKDF2_ITERATIONS = 600_000  # constant work factor, never per-user
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 32  # random salt, version 2
IV_SIZE = 16  # field blobs
TAG_SIZE = 16  # GCM tag

# An EncryptedBlob is the base64 text of [iv][ciphertext + tag].
EncryptedBlob = str


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------

class SymmetricKey:
    """A 256-bit AES key held in a zeroable buffer.

    The raw bytes are only handed out by ``export()``; ``wipe()`` overwrites
    them in place. Never printed: ``repr`` shows only the wipe state.
    """

    __slots__ = ("_material", "_wiped")

    def __init__(self, material: bytes):
        if len(material) != KEY_LENGTH:
            raise ValueError(
                f"Key must be exactly {KEY_LENGTH} bytes, got {len(material)}"
            )
        self._material = bytearray(material)
        self._wiped = False

    @property
    def wiped(self) -> bool:
        return self._wiped

    def export(self) -> bytes:
        """Return the raw key bytes.

        Raises:
            ValueError: If the key has already been wiped.
        """
        if self._wiped:
            raise ValueError("Key material has been wiped")
        return bytes(self._material)

    def wipe(self) -> None:
        """Best-effort zeroization of the key buffer."""
        for i in range(len(self._material)):
            self._material[i] = 0
        self._wiped = True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymmetricKey):
            return NotImplemented
        return hmac.compare_digest(self._material, other._material)

    __hash__ = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} wiped={self._wiped}>"


class MasterKey(SymmetricKey):
    """The single key protecting all of a user's field ciphertext."""


class WrapKey(SymmetricKey):
    """Key derived from a passkey credential, used only to wrap a MasterKey."""


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: str, salt: bytes) -> MasterKey:
    """Derive the master key from a password using PBKDF2-HMAC-SHA256.

    The output is used directly as the AES-256 key.

    Args:
        password: User-supplied master password.
        salt: Salt bytes, see ``resolve_salt``.

    Returns:
        32-byte MasterKey.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return MasterKey(kdf.derive(password.encode("utf-8")))


async def derive_key_async(password: str, salt: bytes) -> MasterKey:
    """Run ``derive_key`` in a worker thread.

    The derivation is not cancellable: abandoning the await leaves the
    thread running to completion.
    """
    return await asyncio.to_thread(derive_key, password, salt)


def user_salt(user_id: str) -> bytes:
    """Deterministic version-1 salt: SHA-256 of the user id.

    Kept for compatibility with existing vaults. It is derived from a public
    identifier, so it does not defend against precomputation for a known
    user id; new vaults may opt into ``SALT_V2_RANDOM``.
    """
    return hashlib.sha256(user_id.encode("utf-8")).digest()


def generate_salt() -> bytes:
    """Return a random version-2 salt."""
    return os.urandom(SALT_SIZE)


def new_salt_record(salt_version: int) -> SaltRecord:
    """Build the salt record for a vault being set up for the first time."""
    if salt_version == SALT_V2_RANDOM:
        return SaltRecord(
            salt_version=SALT_V2_RANDOM,
            salt_b64=base64.b64encode(generate_salt()).decode("ascii"),
        )
    return SaltRecord(salt_version=SALT_V1_DETERMINISTIC)


def resolve_salt(record: SaltRecord | None, user_id: str) -> bytes:
    """Return the salt bytes for a user.

    A missing record means a vault created before salts were versioned,
    which always used the deterministic salt.

    Raises:
        MalformedInputError: If a version-2 record carries no usable salt.
    """
    if record is None or record.salt_version == SALT_V1_DETERMINISTIC:
        return user_salt(user_id)
    if not record.salt_b64:
        raise MalformedInputError(
            f"Salt record version {record.salt_version} has no salt"
        )
    try:
        return base64.b64decode(record.salt_b64, validate=True)
    except (binascii.Error, ValueError) as err:
        raise MalformedInputError("Stored salt is not valid base64") from err


# ---------------------------------------------------------------------------
# AEAD primitives
# ---------------------------------------------------------------------------

def split_blob(blob: EncryptedBlob, iv_size: int) -> tuple[bytes, bytes]:
    """Decode a base64 blob into (iv, ciphertext+tag).

    Raises:
        MalformedInputError: If the blob is empty, not base64 or too short.
    """
    if not isinstance(blob, str) or not blob.strip():
        raise MalformedInputError("Encrypted blob is empty")
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as err:
        raise MalformedInputError("Encrypted blob is not valid base64") from err
    _min = iv_size + TAG_SIZE
    if len(raw) < _min:
        raise MalformedInputError(
            f"Encrypted blob too short: {len(raw)} bytes (minimum {_min})"
        )
    return raw[:iv_size], raw[iv_size:]


def aead_encrypt(
    key: SymmetricKey, plaintext: bytes, iv_size: int = IV_SIZE
) -> EncryptedBlob:
    """Encrypt bytes with AES-GCM under a fresh random IV.

    Format: base64([iv][encrypted_payload + tag])
    """
    cipher = AESGCM(key.export())
    iv = os.urandom(iv_size)
    ct = cipher.encrypt(iv, plaintext, None)
    return base64.b64encode(iv + ct).decode("ascii")


def aead_decrypt(
    key: SymmetricKey, blob: EncryptedBlob, iv_size: int = IV_SIZE
) -> bytes:
    """Inverse of ``aead_encrypt``.

    Raises:
        MalformedInputError: If the blob cannot be split.
        AuthenticationFailureError: On GCM tag mismatch.
    """
    iv, ct = split_blob(blob, iv_size)
    cipher = AESGCM(key.export())
    try:
        return cipher.decrypt(iv, ct, None)
    except InvalidTag as err:
        raise AuthenticationFailureError(
            "Authentication failed: wrong key or corrupted ciphertext"
        ) from err


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: str) -> bytes:
    """JSON-wrap a field value before encryption (legacy stored format)."""
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> str:
    """Unwrap a decrypted field value.

    Values are stored JSON-wrapped; older entries may hold raw text, which
    is returned as-is when it does not parse to a JSON string.

    Raises:
        MalformedInputError: If the plaintext is not valid UTF-8.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise MalformedInputError("Decrypted value is not valid UTF-8") from err
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError:
        return text
    if isinstance(parsed, str):
        return parsed
    return text


# ---------------------------------------------------------------------------
# Field cipher
# ---------------------------------------------------------------------------

def encrypt_field(key: MasterKey, plaintext: str) -> EncryptedBlob:
    """Encrypt a single record field.

    Args:
        key: Master key.
        plaintext: Non-empty string value.

    Returns:
        EncryptedBlob with a fresh 16-byte IV.

    Raises:
        EmptyInputError: If plaintext is None or blank after trimming.
        TypeError: If plaintext is not a string.
    """
    if plaintext is None:
        raise EmptyInputError("Cannot encrypt null value")
    if not isinstance(plaintext, str):
        raise TypeError("Can only encrypt string values")
    if not plaintext.strip():
        raise EmptyInputError("Cannot encrypt empty string")
    return aead_encrypt(key, serialize_value(plaintext), IV_SIZE)


def decrypt_field(key: MasterKey, blob: EncryptedBlob) -> str:
    """Decrypt a single record field produced by ``encrypt_field``.

    Raises:
        MalformedInputError: Not base64, or too short to contain an IV.
        AuthenticationFailureError: Wrong key or corrupted ciphertext.
    """
    return deserialize_value(aead_decrypt(key, blob, IV_SIZE))
