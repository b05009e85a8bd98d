"""Credential Vault — Encrypted records bound to a master password.

Security Note (Threat Model):
    The derived key and decrypted values live in process memory while the
    vault is unlocked. A memory dump of the application process could expose
    them. This is an accepted limitation; mitigation requires OS keychain or
    secure enclave integration which is out of scope.
"""

from .credential_vault import CredentialVault
from .config import VaultConfig, generate_kdf_salt
from .crypto import (
    KeyHandle,
    derive_key,
    encrypt_bytes,
    decrypt_bytes,
    encrypt_value,
    decrypt_value,
)
from .backends import MemoryBackend, JsonFileBackend
from .key_rotation import migrate_records, rotate_key, check_rotation_status
from .keys import KeySession
from .master import (
    MasterPasswordManager,
    validate_password_strength,
    generate_master_password,
)
from .models import Envelope, LockoutStatus, RotationStatus, VaultState
from .notify import NoticeKind, NullNotifier, LoggingNotifier
from .store import RecordStore
from .exceptions import (
    VaultError,
    KeyDerivationError,
    MissingKeyError,
    DecryptionError,
    EncryptionError,
    AuthenticationError,
    LockoutError,
    WeakPasswordError,
    RotationInProgress,
    MigrationPartialFailure,
    RotationPartialFailure,
)

__all__ = [
    "CredentialVault",
    "VaultConfig",
    "generate_kdf_salt",
    "KeyHandle",
    "derive_key",
    "encrypt_bytes",
    "decrypt_bytes",
    "encrypt_value",
    "decrypt_value",
    "MemoryBackend",
    "JsonFileBackend",
    "migrate_records",
    "rotate_key",
    "check_rotation_status",
    "KeySession",
    "MasterPasswordManager",
    "validate_password_strength",
    "generate_master_password",
    "Envelope",
    "LockoutStatus",
    "RotationStatus",
    "VaultState",
    "NoticeKind",
    "NullNotifier",
    "LoggingNotifier",
    "RecordStore",
    "VaultError",
    "KeyDerivationError",
    "MissingKeyError",
    "DecryptionError",
    "EncryptionError",
    "AuthenticationError",
    "LockoutError",
    "WeakPasswordError",
    "RotationInProgress",
    "MigrationPartialFailure",
    "RotationPartialFailure",
]
