"""
Vault exception classes.

Everything raised across the vault boundary is one of these. Messages are
generic on purpose; the underlying primitive error is only logged locally.
"""


class VaultError(Exception):
    """Base exception for vault operations"""


class KeyDerivationError(VaultError):
    """Raised when the key derivation primitive fails"""


class MissingKeyError(VaultError):
    """Raised when an encrypted record is accessed without an active key"""

    def __init__(self, message: str = "Encryption key required"):
        super().__init__(message)


class DecryptionError(VaultError):
    """Raised when an envelope cannot be opened (wrong key or tampered data)"""

    def __init__(self, message: str = "Decryption failed - please verify your credentials"):
        super().__init__(message)


class EncryptionError(VaultError):
    """Raised when a value cannot be serialized or encrypted"""

    def __init__(self, message: str = "Encryption failed"):
        super().__init__(message)


class AuthenticationError(VaultError):
    """Raised when a master password does not match the stored verifier"""

    def __init__(self, message: str = "Master password verification failed"):
        super().__init__(message)


class LockoutError(VaultError):
    """Raised when verification is refused because of too many failed attempts"""

    def __init__(self, lockout_minutes: int):
        self.lockout_minutes = lockout_minutes
        super().__init__(
            f"Too many attempts. Please try again in {lockout_minutes} minutes."
        )


class WeakPasswordError(VaultError, ValueError):
    """Raised when a master password does not meet the strength requirements"""

    def __init__(self, requirements: list[str]):
        self.requirements = list(requirements)
        super().__init__(f"Password too weak: {', '.join(self.requirements)}")


class RotationInProgress(VaultError):
    """Raised when a key rotation is requested while another one is running"""

    def __init__(self, message: str = "A key rotation is already in progress"):
        super().__init__(message)


class MigrationPartialFailure(VaultError):
    """A single record could not be migrated to encrypted form"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Skipping non-JSON data for key: {key}")


class RotationPartialFailure(VaultError):
    """A single record could not be re-encrypted under the new key"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Failed to re-encrypt item {key}")
