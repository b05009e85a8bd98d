"""
Vault data model — envelopes, per-record metadata, rotation bookkeeping
and the status objects returned to callers.

Wire formats are orjson documents. Binary fields are base64 encoded and
timestamps are milliseconds since the epoch.
"""
import base64
import binascii
from enum import Enum
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, Field, ValidationError

from .exceptions import DecryptionError

FORMAT_VERSION = "1.1.0"


def _b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64d(data: str) -> bytes:
    return base64.b64decode(data, validate=True)


def _load_object(data: bytes) -> dict:
    doc = orjson.loads(data)
    if not isinstance(doc, dict):
        raise ValueError(f"expected a JSON object, got {type(doc).__name__}")
    return doc


class VaultState(str, Enum):
    """Lifecycle of the master password."""
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class Envelope(BaseModel):
    """Self-describing encrypted record."""

    ciphertext: bytes
    iv: bytes
    salt: bytes
    tag: bytes
    format_version: str = FORMAT_VERSION
    created_at: int

    model_config = {"frozen": True}

    def to_dict(self) -> dict[str, Any]:
        return {
            "encrypted": _b64e(self.ciphertext),
            "iv": _b64e(self.iv),
            "salt": _b64e(self.salt),
            "tag": _b64e(self.tag),
            "version": self.format_version,
            "timestamp": self.created_at,
        }

    def to_bytes(self) -> bytes:
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Envelope":
        """Parse a stored envelope.

        Raises:
            DecryptionError: If the document is not a well-formed envelope.
        """
        try:
            doc = orjson.loads(data)
            return cls(
                ciphertext=_b64d(doc["encrypted"]),
                iv=_b64d(doc["iv"]),
                salt=_b64d(doc["salt"]),
                tag=_b64d(doc["tag"]),
                format_version=doc.get("version", FORMAT_VERSION),
                created_at=doc.get("timestamp", 0),
            )
        except (orjson.JSONDecodeError, binascii.Error, KeyError,
                TypeError, AttributeError, ValidationError):
            raise DecryptionError() from None


class RecordMetadata(BaseModel):
    """Per-record encryption flag, stored under ``<key>#meta``."""

    key: str
    encrypted: bool
    format_version: str = FORMAT_VERSION

    def to_bytes(self) -> bytes:
        return orjson.dumps({
            "key": self.key,
            "encrypted": self.encrypted,
            "version": self.format_version,
        })

    @classmethod
    def from_bytes(cls, data: bytes) -> "RecordMetadata":
        """Parse a metadata entry.

        Raises:
            ValueError: If the entry is not a JSON object.
        """
        doc = _load_object(data)
        return cls(
            key=doc.get("key", ""),
            encrypted=bool(doc.get("encrypted", False)),
            format_version=doc.get("version", FORMAT_VERSION),
        )


class RotationBookkeeping(BaseModel):
    """Global rotation state, persisted apart from the records."""

    last_key_rotation: Optional[int] = None
    key_rotation_required: bool = False
    kdf_salt: Optional[bytes] = None

    def to_bytes(self) -> bytes:
        return orjson.dumps({
            "lastKeyRotation": self.last_key_rotation,
            "keyRotationRequired": self.key_rotation_required,
            "kdfSalt": _b64e(self.kdf_salt) if self.kdf_salt else None,
        })

    @classmethod
    def from_bytes(cls, data: bytes) -> "RotationBookkeeping":
        doc = _load_object(data)
        salt = doc.get("kdfSalt")
        return cls(
            last_key_rotation=doc.get("lastKeyRotation"),
            key_rotation_required=bool(doc.get("keyRotationRequired", False)),
            kdf_salt=_b64d(salt) if salt else None,
        )


class PlainRecord(BaseModel):
    """A record stored without encryption.

    ``legacy`` is True when the record has no metadata entry at all.
    """

    data: bytes
    legacy: bool = False

    model_config = {"frozen": True}


class EncryptedRecord(BaseModel):
    """A record stored as an envelope."""

    envelope: Envelope

    model_config = {"frozen": True}


StoredRecord = Union[PlainRecord, EncryptedRecord]


class RotationStatus(BaseModel):
    """Advisory key rotation signal."""

    needs_rotation: bool
    warning: bool
    days_until_needed: int


class LockoutStatus(BaseModel):
    """Whether another verification attempt is currently allowed."""

    allowed: bool
    remaining_attempts: int
    lockout_minutes: Optional[int] = None


class PasswordStrength(BaseModel):
    """Result of the master password strength check."""

    is_valid: bool
    score: int
    requirements: list[str] = Field(default_factory=list)
