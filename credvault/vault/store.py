"""
RecordStore — Maps logical record keys to envelopes (or plaintext) in a
key-value backend.

Persisted layout per record key ``K``:
- ``K``: envelope JSON, or the plaintext value
- ``K#meta``: ``{"key", "encrypted", "version"}``

Records without a metadata entry are legacy plaintext and are returned
unchanged.

Security Note:
    Never log plaintext or ciphertext values. Only log key names and
    key fingerprints.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from .backends import KeyValueBackend, maybe_await
from .crypto import decrypt_value, deserialize_value, encrypt_value, serialize_value
from .exceptions import DecryptionError
from .keys import KeySession
from .models import (
    EncryptedRecord,
    Envelope,
    PlainRecord,
    RecordMetadata,
    StoredRecord,
)

logger = logging.getLogger("credvault.vault")

META_SUFFIX = "#meta"
RESERVED_PREFIX = "__credvault__"
MAX_KEY_LENGTH = 255


def meta_name(key: str) -> str:
    return f"{key}{META_SUFFIX}"


def is_record_name(name: str) -> bool:
    """True for backend names that hold a record value."""
    return not name.endswith(META_SUFFIX) and not name.startswith(RESERVED_PREFIX)


class RecordStore:
    """Encrypted record storage over a key-value backend.

    Whether a write is encrypted depends on whether ``key_session`` holds an
    active key at write time. ``get`` and ``set`` wait for a running key
    rotation to finish.
    """

    def __init__(self, backend: KeyValueBackend, key_session: KeySession):
        self._backend = backend
        self._keys = key_session
        self._lock = asyncio.Lock()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    @property
    def key_session(self) -> KeySession:
        return self._keys

    # ------------------------------------------------------------------
    # Key validation
    # ------------------------------------------------------------------

    def _validate_key(self, key: str) -> None:
        """Validate a record key name.

        Raises:
            ValueError: If key is empty, too long, or uses a reserved name.
        """
        if not key:
            raise ValueError("Record key cannot be empty")
        if len(key) > MAX_KEY_LENGTH:
            raise ValueError(f"Record key cannot exceed {MAX_KEY_LENGTH} characters")
        if key.endswith(META_SUFFIX):
            raise ValueError(f"Record key cannot end with '{META_SUFFIX}'")
        if key.startswith(RESERVED_PREFIX):
            raise ValueError(f"Record key cannot start with '{RESERVED_PREFIX}'")

    # ------------------------------------------------------------------
    # Raw record access
    # ------------------------------------------------------------------

    async def _read_record(self, key: str) -> Optional[StoredRecord]:
        raw = await maybe_await(self._backend.read(key))
        if raw is None:
            return None
        meta_raw = await maybe_await(self._backend.read(meta_name(key)))
        if meta_raw is None:
            return PlainRecord(data=raw, legacy=True)
        try:
            meta = RecordMetadata.from_bytes(meta_raw)
        except ValueError:
            logger.warning("Unreadable metadata for key=%s, treating as legacy", key)
            return PlainRecord(data=raw, legacy=True)
        if not meta.encrypted:
            return PlainRecord(data=raw)
        return EncryptedRecord(envelope=Envelope.from_bytes(raw))

    async def _write_record(self, key: str, record: StoredRecord) -> None:
        if isinstance(record, EncryptedRecord):
            data = record.envelope.to_bytes()
            meta = RecordMetadata(
                key=key, encrypted=True,
                format_version=record.envelope.format_version,
            )
        else:
            data = record.data
            meta = RecordMetadata(key=key, encrypted=False)
        await maybe_await(self._backend.write(key, data))
        await maybe_await(self._backend.write(meta_name(key), meta.to_bytes()))

    async def load(self, key: str) -> Optional[StoredRecord]:
        """Read a record's value and metadata as a single variant.

        Raises:
            DecryptionError: If the metadata says encrypted but the value is
                not a well-formed envelope.
        """
        self._validate_key(key)
        async with self._lock:
            return await self._read_record(key)

    async def save(self, key: str, record: StoredRecord) -> None:
        """Write a record's value and metadata."""
        self._validate_key(key)
        async with self._lock:
            await self._write_record(key, record)

    async def replace(
        self,
        key: str,
        transform: Callable[[Optional[StoredRecord]], Optional[StoredRecord]],
    ) -> bool:
        """Rewrite a record in place under the store lock.

        ``transform`` receives the current record and returns its replacement,
        or None to leave it as is. No other store operation can run between
        the read and the write.

        Returns:
            True if a new record was written.

        Raises:
            DecryptionError: If the stored envelope is malformed.
        """
        self._validate_key(key)
        async with self._lock:
            replacement = transform(await self._read_record(key))
            if replacement is None:
                return False
            await self._write_record(key, replacement)
            return True

    async def keys(self) -> list[str]:
        """List the logical record keys present in the backend."""
        names = await maybe_await(self._backend.names())
        return sorted(name for name in names if is_record_name(name))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, key: str, default: Any = None) -> Any:
        """Return a record's value, decrypting it when needed.

        Legacy records (no metadata) are returned as the raw stored bytes,
        even when those bytes hold JSON. Migration encrypts legacy JSON as a
        serialized value, so after ``migrate_records`` the same record reads
        back parsed.
        A record that fails to decrypt is logged and ``default`` is returned.

        Raises:
            MissingKeyError: If the record is encrypted and no key is active.
        """
        self._validate_key(key)
        await self._keys.wait_for_rotation()
        async with self._lock:
            try:
                record = await self._read_record(key)
            except DecryptionError:
                logger.error("Secure get failed for key=%s: malformed envelope", key)
                return default
            if record is None:
                return default
            if isinstance(record, PlainRecord):
                if record.legacy:
                    return record.data
                try:
                    return deserialize_value(record.data)
                except ValueError:
                    logger.warning("Plaintext record key=%s is not JSON", key)
                    return record.data
            active = self._keys.require_key()
            try:
                return decrypt_value(record.envelope, active)
            except DecryptionError:
                logger.error(
                    "Secure get failed for key=%s with key %s",
                    key, active.fingerprint,
                )
                return default

    async def set(self, key: str, value: Any) -> None:
        """Store a value, encrypted when an active key is present.

        Raises:
            ValueError: If key is invalid.
            EncryptionError: If the value cannot be serialized.
        """
        self._validate_key(key)
        await self._keys.wait_for_rotation()
        async with self._lock:
            active = self._keys.active_key
            if active is not None:
                record: StoredRecord = EncryptedRecord(
                    envelope=encrypt_value(value, active),
                )
            else:
                record = PlainRecord(data=serialize_value(value))
            await self._write_record(key, record)
        logger.debug(
            "Vault set: key=%s encrypted=%s", key, active is not None,
        )

    async def remove(self, key: str) -> None:
        """Delete a record and its metadata. Missing records are ignored."""
        self._validate_key(key)
        async with self._lock:
            await maybe_await(self._backend.delete(key))
            await maybe_await(self._backend.delete(meta_name(key)))
        logger.debug("Vault remove: key=%s", key)

    async def exists(self, key: str) -> bool:
        self._validate_key(key)
        raw = await maybe_await(self._backend.read(key))
        return raw is not None

    # ------------------------------------------------------------------
    # Reserved entries
    # ------------------------------------------------------------------

    async def read_reserved(self, name: str) -> Optional[bytes]:
        return await maybe_await(self._backend.read(f"{RESERVED_PREFIX}{name}"))

    async def write_reserved(self, name: str, data: bytes) -> None:
        await maybe_await(self._backend.write(f"{RESERVED_PREFIX}{name}", data))
