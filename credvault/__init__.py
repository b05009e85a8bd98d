"""credvault.

Encrypted local credential store: master-password key derivation,
authenticated encryption at rest, key rotation and plaintext migration.
"""
from .version import __version__
from .session import SessionStore
from .vault import CredentialVault, VaultConfig

__all__ = ["__version__", "SessionStore", "CredentialVault", "VaultConfig"]
