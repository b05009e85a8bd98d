"""
Vault Crypto Core — Key derivation, envelope encryption/decryption, and serialization.

- Key derivation: PBKDF2-HMAC-SHA256(password, salt) → 256-bit AES key
- Envelope: AES-256-GCM → {ciphertext, iv, salt, tag, version, timestamp}

Security Note:
    Never log passwords, key material, plaintext or ciphertext values.
    Salts and IVs are random per envelope; collision probability negligible
    under normal usage.
"""
import os
import time
import base64
import hashlib
import logging
from typing import Any, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import MIN_KDF_ITERATIONS, SALT_LENGTH
from .exceptions import DecryptionError, EncryptionError, KeyDerivationError
from .models import FORMAT_VERSION, Envelope

logger = logging.getLogger("credvault.vault")

KEY_LENGTH = 32  # AES-256
IV_SIZE = 16  # 128-bit IV
TAG_SIZE = 16  # 128-bit GCM tag

_BYTES_WRAPPER_KEY = "__vault_bytes_b64__"


class KeyHandle:
    """Opaque derived key.

    Holds the raw key material together with the salt it was derived from.
    ``fingerprint`` is a short, non-reversible identifier that is safe to log.
    """

    __slots__ = ("_material", "salt", "fingerprint")

    def __init__(self, material: bytes, salt: bytes):
        if len(material) != KEY_LENGTH:
            raise ValueError(f"key material must be {KEY_LENGTH} bytes")
        self._material = material
        self.salt = salt
        self.fingerprint = hashlib.sha256(b"credvault-fp" + material).hexdigest()[:12]

    def __repr__(self) -> str:
        return f"<KeyHandle {self.fingerprint}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyHandle):
            return NotImplemented
        return self._material == other._material

    def __hash__(self) -> int:
        return hash(self.fingerprint)

    def _cipher(self) -> AESGCM:
        return AESGCM(self._material)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    password: str,
    salt: bytes,
    iterations: int = MIN_KDF_ITERATIONS,
) -> KeyHandle:
    """Derive a 256-bit encryption key from a password using PBKDF2-HMAC-SHA256.

    Args:
        password: Master password.
        salt: KDF salt.
        iterations: PBKDF2 iteration count (at least 100,000).

    Returns:
        KeyHandle wrapping the derived key.

    Raises:
        KeyDerivationError: If the primitive fails.
    """
    if iterations < MIN_KDF_ITERATIONS:
        raise KeyDerivationError(
            f"PBKDF2 iterations must be at least {MIN_KDF_ITERATIONS}"
        )
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        material = kdf.derive(password.encode("utf-8"))
    except Exception as err:
        logger.error("Key derivation failed: %s", type(err).__name__)
        raise KeyDerivationError("Failed to set encryption key") from None
    return KeyHandle(material, salt)


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Generate a cryptographically random salt."""
    return os.urandom(length)


def hash_password(password: str) -> str:
    """Return the SHA-256 hex digest used as the session password verifier."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(password.encode("utf-8"))
    return digest.finalize().hex()


def _resolve_key(key: Union[KeyHandle, str], salt: bytes) -> KeyHandle:
    # A plain password derives a one-off key from the envelope salt.
    if isinstance(key, str):
        return derive_key(key, salt)
    return key


# ---------------------------------------------------------------------------
# Envelope encryption
# ---------------------------------------------------------------------------

def encrypt_bytes(plaintext: bytes, key: Union[KeyHandle, str]) -> Envelope:
    """Encrypt plaintext into a new envelope.

    A fresh salt and IV are generated on every call.

    Args:
        plaintext: Data to encrypt.
        key: Active key handle, or a password for a one-off derived key.

    Returns:
        Envelope with ciphertext and tag split apart.
    """
    salt = generate_salt()
    iv = os.urandom(IV_SIZE)
    handle = _resolve_key(key, salt)
    try:
        combined = handle._cipher().encrypt(iv, plaintext, None)
    except Exception as err:
        logger.error("Encryption failed: %s", type(err).__name__)
        raise EncryptionError() from None
    return Envelope(
        ciphertext=combined[:-TAG_SIZE],
        tag=combined[-TAG_SIZE:],
        iv=iv,
        salt=salt,
        format_version=FORMAT_VERSION,
        created_at=int(time.time() * 1000),
    )


def decrypt_bytes(envelope: Envelope, key: Union[KeyHandle, str]) -> bytes:
    """Decrypt an envelope.

    Args:
        envelope: Envelope produced by ``encrypt_bytes``.
        key: Key handle, or the password the envelope was sealed with.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        DecryptionError: On a wrong key, tampered data or a malformed envelope.
    """
    if len(envelope.tag) != TAG_SIZE:
        raise DecryptionError()
    handle = _resolve_key(key, envelope.salt)
    try:
        return handle._cipher().decrypt(
            envelope.iv, envelope.ciphertext + envelope.tag, None,
        )
    except (InvalidTag, ValueError) as err:
        logger.debug("Envelope authentication failed: %s", type(err).__name__)
        raise DecryptionError() from None


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a Python value to bytes for encryption.

    Supports: str, int, float, dict, list, bytes, bool, None.
    bytes values are wrapped as {"__vault_bytes_b64__": "<base64>"} for safe JSON round-trip.

    Raises:
        EncryptionError: If the value cannot be serialized.
    """
    if isinstance(value, bytes):
        wrapped = {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
        return orjson.dumps(wrapped)
    try:
        return orjson.dumps(value)
    except TypeError:
        raise EncryptionError(
            f"Unsupported value type: {type(value).__name__}"
        ) from None


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes back to a Python value.

    Raises:
        orjson.JSONDecodeError: If data is not valid JSON.
    """
    parsed = orjson.loads(data)
    if isinstance(parsed, dict) and _BYTES_WRAPPER_KEY in parsed and len(parsed) == 1:
        return base64.b64decode(parsed[_BYTES_WRAPPER_KEY])
    return parsed


def encrypt_value(value: Any, key: Union[KeyHandle, str]) -> Envelope:
    """Serialize and encrypt a structured value."""
    return encrypt_bytes(serialize_value(value), key)


def decrypt_value(envelope: Envelope, key: Union[KeyHandle, str]) -> Any:
    """Decrypt an envelope and deserialize its value.

    Raises:
        DecryptionError: If decryption or deserialization fails.
    """
    plaintext = decrypt_bytes(envelope, key)
    try:
        return deserialize_value(plaintext)
    except ValueError:
        raise DecryptionError() from None
