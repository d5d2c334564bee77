"""Vault data models."""
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

SALT_V1_DETERMINISTIC = 1
SALT_V2_RANDOM = 2


class VaultState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class SaltRecord(BaseModel):
    """Which salt strategy a user's vault was created with.

    Version 1 carries no salt (it is recomputed from the user id);
    version 2 carries the random salt, base64-encoded.
    """
    salt_version: int = Field(default=SALT_V1_DETERMINISTIC, ge=1, le=2)
    salt_b64: Optional[str] = None

    @model_validator(mode="after")
    def validate_salt_present(self) -> "SaltRecord":
        """A random-salt record must carry its salt."""
        if self.salt_version == SALT_V2_RANDOM and not self.salt_b64:
            raise ValueError("salt_b64 is required for salt_version 2")
        return self


class Decrypted(BaseModel):
    """A field that decrypted successfully."""
    model_config = {"frozen": True}

    status: Literal["decrypted"] = "decrypted"
    value: str


class Failed(BaseModel):
    """A field whose ciphertext could not be authenticated."""
    model_config = {"frozen": True}

    status: Literal["failed"] = "failed"
    field: str
    reason: str = "authentication failed"


FieldResult = Union[Decrypted, Failed]
