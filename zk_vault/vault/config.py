"""
Vault Configuration — Validated settings and the per-device timeout preference.

Reads defaults from environment variables:
    VAULT_TIMEOUT_MINUTES = <integer 1-120>   (default 10)
    VAULT_SALT_VERSION = <1|2>                (default 1)
    VAULT_WATCHDOG_INTERVAL = <seconds>       (default 30)

Security Note:
    Nothing in here is secret. Never store key material in preferences.
"""
import os
import logging
from typing import Annotated, Optional
from collections.abc import MutableMapping

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from .models import SALT_V1_DETERMINISTIC, SALT_V2_RANDOM

logger = logging.getLogger("zk_vault")

DEFAULT_TIMEOUT_MINUTES = 10
MIN_TIMEOUT_MINUTES = 1
MAX_TIMEOUT_MINUTES = 120

TIMEOUT_PREFERENCE_KEY = "vault_timeout_minutes"

TimeoutMinutes = Annotated[
    int, Field(ge=MIN_TIMEOUT_MINUTES, le=MAX_TIMEOUT_MINUTES)
]
_timeout_adapter = TypeAdapter(TimeoutMinutes)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    timeout_minutes: TimeoutMinutes = DEFAULT_TIMEOUT_MINUTES
    salt_version: int = Field(default=SALT_V1_DETERMINISTIC)
    activity_throttle: float = Field(default=1.0, ge=0)
    watchdog_interval: float = Field(default=30.0, gt=0)

    @field_validator("salt_version")
    @classmethod
    def validate_salt_version(cls, v: int) -> int:
        """Validate the salt strategy is a known version."""
        if v not in (SALT_V1_DETERMINISTIC, SALT_V2_RANDOM):
            raise ValueError(f"Unsupported salt version: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        return cls(
            timeout_minutes=os.environ.get(
                "VAULT_TIMEOUT_MINUTES", DEFAULT_TIMEOUT_MINUTES
            ),
            salt_version=os.environ.get(
                "VAULT_SALT_VERSION", SALT_V1_DETERMINISTIC
            ),
            watchdog_interval=os.environ.get("VAULT_WATCHDOG_INTERVAL", 30.0),
        )


class VaultPreferences:
    """Durable per-device preferences read by the vault.

    Wraps any string mapping (a settings file, a local key-value store);
    the only preference used today is the inactivity timeout.
    """

    def __init__(
        self,
        store: Optional[MutableMapping[str, str]] = None,
        default_timeout: int = DEFAULT_TIMEOUT_MINUTES,
    ):
        self._store = store if store is not None else {}
        self._default_timeout = _timeout_adapter.validate_python(default_timeout)

    @property
    def timeout_minutes(self) -> int:
        """Stored timeout, or the default when unset or invalid."""
        raw = self._store.get(TIMEOUT_PREFERENCE_KEY)
        if raw is None:
            return self._default_timeout
        try:
            return _timeout_adapter.validate_python(int(raw))
        except (ValueError, ValidationError):
            logger.warning(
                "Ignoring invalid %s preference %r, using %d",
                TIMEOUT_PREFERENCE_KEY, raw, self._default_timeout,
            )
            return self._default_timeout

    @timeout_minutes.setter
    def timeout_minutes(self, minutes: int) -> None:
        value = _timeout_adapter.validate_python(minutes)
        self._store[TIMEOUT_PREFERENCE_KEY] = str(value)
        logger.debug("Vault timeout set to %d minute(s)", value)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60.0
