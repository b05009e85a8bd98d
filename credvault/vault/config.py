"""
Vault Configuration — Key derivation, lockout and rotation settings.

Reads optional overrides from environment variables:
    CREDVAULT_KDF_ITERATIONS = <int, at least 100000>
    CREDVAULT_KDF_SALT = <base64-encoded salt, at least 16 bytes>
    CREDVAULT_MAX_ATTEMPTS = <int>
    CREDVAULT_LOCKOUT_MINUTES = <int>
    CREDVAULT_ROTATION_INTERVAL_DAYS = <int>
    CREDVAULT_ROTATION_WARNING_DAYS = <int>

When CREDVAULT_KDF_SALT is not set, a random salt is generated on first
master-password setup and kept in the rotation bookkeeping entry.

Security Note:
    Never log passwords or key material. Salts are not secret but are
    not logged either.
"""
import os
import base64
import secrets
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("credvault.vault")

MIN_KDF_ITERATIONS = 100_000
MIN_SALT_LENGTH = 16
SALT_LENGTH = 32  # 256-bit salt

_ENV_PREFIX = "CREDVAULT_"


def generate_kdf_salt() -> str:
    """Generate a random 32-byte KDF salt and return it as a base64 string.

    This is a utility for operators who want to pin the per-installation
    salt through ``CREDVAULT_KDF_SALT``.

    Returns:
        Base64-encoded 32-byte salt string.
    """
    return base64.b64encode(secrets.token_bytes(SALT_LENGTH)).decode("ascii")


def load_kdf_salt() -> Optional[bytes]:
    """Read the pinned KDF salt from CREDVAULT_KDF_SALT, if any.

    Returns:
        Raw salt bytes, or None when the variable is not set.

    Raises:
        ValueError: If the salt is not valid base64 or is too short.
    """
    raw = os.environ.get(f"{_ENV_PREFIX}KDF_SALT")
    if not raw:
        return None
    try:
        salt = base64.b64decode(raw, validate=True)
    except ValueError as err:
        raise ValueError("CREDVAULT_KDF_SALT is not valid base64") from err
    if len(salt) < MIN_SALT_LENGTH:
        raise ValueError(
            f"CREDVAULT_KDF_SALT must decode to at least {MIN_SALT_LENGTH} bytes, "
            f"got {len(salt)}"
        )
    return salt


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None:
        return None
    return int(raw)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    kdf_iterations: int = Field(default=MIN_KDF_ITERATIONS, ge=MIN_KDF_ITERATIONS)
    kdf_salt: Optional[bytes] = None
    max_attempts: int = Field(default=5, ge=1)
    lockout_minutes: int = Field(default=15, ge=1)
    rotation_interval_days: int = Field(default=90, ge=1)
    rotation_warning_days: int = Field(default=14, ge=0)
    min_password_score: int = Field(default=6, ge=1, le=7)

    model_config = {"frozen": True}

    @field_validator("kdf_salt")
    @classmethod
    def validate_salt(cls, v: Optional[bytes]) -> Optional[bytes]:
        """Reject salts that are too short to be useful."""
        if v is not None and len(v) < MIN_SALT_LENGTH:
            raise ValueError(
                f"kdf_salt must be at least {MIN_SALT_LENGTH} bytes, got {len(v)}"
            )
        return v

    @model_validator(mode="after")
    def validate_rotation_window(self) -> "VaultConfig":
        """Ensure the warning period fits inside the rotation interval."""
        if self.rotation_warning_days >= self.rotation_interval_days:
            raise ValueError(
                f"rotation_warning_days ({self.rotation_warning_days}) must be "
                f"smaller than rotation_interval_days ({self.rotation_interval_days})"
            )
        return self

    @property
    def lockout_window(self) -> float:
        """Lockout window in seconds."""
        return self.lockout_minutes * 60.0

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables fall back to the field defaults.

        Returns:
            Populated VaultConfig instance.
        """
        values: dict = {}
        for field, env in (
            ("kdf_iterations", "KDF_ITERATIONS"),
            ("max_attempts", "MAX_ATTEMPTS"),
            ("lockout_minutes", "LOCKOUT_MINUTES"),
            ("rotation_interval_days", "ROTATION_INTERVAL_DAYS"),
            ("rotation_warning_days", "ROTATION_WARNING_DAYS"),
        ):
            value = _env_int(env)
            if value is not None:
                values[field] = value
        salt = load_kdf_salt()
        if salt is not None:
            values["kdf_salt"] = salt
        logger.debug(
            "Vault config loaded from environment: %s",
            sorted(k for k in values if k != "kdf_salt"),
        )
        return cls(**values)
