"""Vault exceptions.

Wrong password is not an exception: unlock and verification return ``False``.
"""


class VaultError(Exception):
    """Base class for every error raised by the vault core."""


class EmptyInputError(VaultError, ValueError):
    """Raised when asked to encrypt a null or blank value."""


class MalformedInputError(VaultError, ValueError):
    """Raised when a blob is not valid base64 or is too short to hold an IV."""


class AuthenticationFailureError(VaultError):
    """GCM tag mismatch: wrong key or corrupted ciphertext."""


class VaultLockedError(VaultError):
    """An operation needing the master key was attempted while locked."""


class PasskeyUnlockFailedError(VaultError):
    """The passkey-wrapped master key could not be wrapped or unwrapped."""
