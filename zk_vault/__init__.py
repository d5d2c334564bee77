"""zk-vault.

Client-side vault core: derive a master key from a password, keep it in
memory and use it to encrypt record fields before they leave the device.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    EmptyInputError,
    MalformedInputError,
    AuthenticationFailureError,
    VaultLockedError,
    PasskeyUnlockFailedError,
)
from .vault import VaultSession, VaultConfig, VaultPreferences

__all__ = [
    "__version__",
    "VaultError",
    "EmptyInputError",
    "MalformedInputError",
    "AuthenticationFailureError",
    "VaultLockedError",
    "PasskeyUnlockFailedError",
    "VaultSession",
    "VaultConfig",
    "VaultPreferences",
]
