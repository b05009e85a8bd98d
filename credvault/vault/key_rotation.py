"""
Vault Key Rotation — Bulk re-encryption under a new key, and migration of
plaintext records to encrypted form.

Neither operation is atomic across the store. Each record is rewritten
as a single value replacement and its metadata says how it is stored, so a
crash part-way leaves a mix of old and new records that are all still
readable. Per-record failures are logged and skipped.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext or ciphertext values.
"""
import math
import time
import logging
from typing import Callable, Optional

import orjson

from .crypto import KeyHandle, decrypt_bytes, encrypt_bytes
from .exceptions import (
    DecryptionError,
    EncryptionError,
    MigrationPartialFailure,
    RotationInProgress,
    RotationPartialFailure,
)
from .keys import KeySession
from .models import (
    EncryptedRecord,
    PlainRecord,
    RotationBookkeeping,
    RotationStatus,
    StoredRecord,
)
from .store import RecordStore

logger = logging.getLogger("credvault.vault")

BOOKKEEPING_NAME = "#rotation"

KEY_ROTATION_INTERVAL_DAYS = 90
KEY_ROTATION_WARNING_DAYS = 14

_DAY_MS = 24 * 60 * 60 * 1000


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------

async def load_bookkeeping(store: RecordStore) -> Optional[RotationBookkeeping]:
    """Read the rotation bookkeeping entry, or None if it was never created."""
    raw = await store.read_reserved(BOOKKEEPING_NAME)
    if raw is None:
        return None
    try:
        return RotationBookkeeping.from_bytes(raw)
    except (ValueError, TypeError) as err:
        logger.error("Failed to get storage config: %s", err)
        return None


async def save_bookkeeping(store: RecordStore, bookkeeping: RotationBookkeeping) -> None:
    await store.write_reserved(BOOKKEEPING_NAME, bookkeeping.to_bytes())


def check_rotation_status(
    bookkeeping: Optional[RotationBookkeeping],
    now_ms: int,
    interval_days: int = KEY_ROTATION_INTERVAL_DAYS,
    warning_days: int = KEY_ROTATION_WARNING_DAYS,
) -> RotationStatus:
    """Decide whether the active key is due for rotation.

    A store with no rotation history, or one flagged ``keyRotationRequired``,
    needs rotation right away.
    """
    if (
        bookkeeping is None
        or bookkeeping.last_key_rotation is None
        or bookkeeping.key_rotation_required
    ):
        return RotationStatus(needs_rotation=True, warning=False, days_until_needed=0)

    days_since = (now_ms - bookkeeping.last_key_rotation) / _DAY_MS
    days_until = interval_days - days_since
    return RotationStatus(
        needs_rotation=days_since >= interval_days,
        warning=0 < days_until <= warning_days,
        days_until_needed=max(0, math.ceil(days_until)),
    )


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------

async def _migrate_record(store: RecordStore, key: str, active: KeyHandle) -> bool:
    """Encrypt one plaintext record. Returns False if it was not plaintext."""

    def encrypt(record: Optional[StoredRecord]) -> Optional[StoredRecord]:
        if not isinstance(record, PlainRecord):
            return None
        try:
            orjson.loads(record.data)
        except orjson.JSONDecodeError:
            raise MigrationPartialFailure(key) from None
        # The stored bytes are already the serialized value.
        return EncryptedRecord(envelope=encrypt_bytes(record.data, active))

    return await store.replace(key, encrypt)


async def migrate_records(store: RecordStore, key_session: KeySession) -> dict:
    """Encrypt every plaintext record under the active key.

    Records whose value is not JSON are left untouched. Running this twice
    leaves the store as running it once.

    Returns:
        Stats dict with keys: total, migrated, skipped, errors, failures.

    Raises:
        MissingKeyError: If no key is active.
    """
    active = key_session.require_key()
    stats = {"total": 0, "migrated": 0, "skipped": 0, "errors": 0, "failures": []}

    logger.info("Starting data migration with key %s", active.fingerprint)
    for key in await store.keys():
        stats["total"] += 1
        try:
            if await _migrate_record(store, key, active):
                stats["migrated"] += 1
            else:
                stats["skipped"] += 1
        except MigrationPartialFailure as err:
            logger.warning("%s", err)
            stats["errors"] += 1
            stats["failures"].append(key)
        except Exception as err:
            logger.error("Error migrating key=%s: %s", key, err)
            stats["errors"] += 1
            stats["failures"].append(key)

    logger.info("Data migration complete: %s", {k: v for k, v in stats.items() if k != "failures"})
    return stats


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------

async def _rotate_record(
    store: RecordStore,
    key: str,
    old_key: KeyHandle,
    new_key: KeyHandle,
) -> bool:
    """Re-encrypt one record. Returns False if it was not encrypted."""

    def reencrypt(record: Optional[StoredRecord]) -> Optional[StoredRecord]:
        if not isinstance(record, EncryptedRecord):
            return None
        plaintext = decrypt_bytes(record.envelope, old_key)
        return EncryptedRecord(envelope=encrypt_bytes(plaintext, new_key))

    try:
        return await store.replace(key, reencrypt)
    except (DecryptionError, EncryptionError):
        raise RotationPartialFailure(key) from None


async def _commit_rotation(
    store: RecordStore,
    key_session: KeySession,
    new_key: KeyHandle,
    clock: Callable[[], float],
) -> None:
    key_session.install(new_key)
    bookkeeping = await load_bookkeeping(store) or RotationBookkeeping()
    bookkeeping.last_key_rotation = _now_ms(clock)
    bookkeeping.key_rotation_required = False
    bookkeeping.kdf_salt = new_key.salt
    await save_bookkeeping(store, bookkeeping)


async def rotate_key(
    store: RecordStore,
    key_session: KeySession,
    new_key: KeyHandle,
    clock: Callable[[], float] = time.time,
) -> dict:
    """Re-encrypt all encrypted records under ``new_key`` and activate it.

    Only one rotation runs at a time. Records that fail to re-encrypt, for
    any reason, keep their old envelope and are listed in ``failures``.
    Once any record has been rewritten the new key is installed and its
    salt recorded, even if the pass is interrupted.

    Args:
        store: Record store to rotate.
        key_session: Owner of the current active key.
        new_key: Key to rotate to; its salt becomes the installation salt.
        clock: Returns the current time in seconds.

    Returns:
        Stats dict with keys: total, rotated, skipped, errors, failures.

    Raises:
        MissingKeyError: If no key is currently active.
        RotationInProgress: If another rotation is running.
    """
    if key_session.rotating:
        raise RotationInProgress()
    async with key_session.rotation_lock:
        old_key = key_session.require_key()
        stats = {"total": 0, "rotated": 0, "skipped": 0, "errors": 0, "failures": []}

        logger.info(
            "Starting key rotation from %s to %s",
            old_key.fingerprint, new_key.fingerprint,
        )
        completed = False
        try:
            for key in await store.keys():
                stats["total"] += 1
                try:
                    if await _rotate_record(store, key, old_key, new_key):
                        stats["rotated"] += 1
                    else:
                        stats["skipped"] += 1
                except RotationPartialFailure as err:
                    logger.error("%s with key %s", err, old_key.fingerprint)
                    stats["errors"] += 1
                    stats["failures"].append(key)
                except Exception as err:
                    logger.error(
                        "Failed to re-encrypt item %s: %s", key, type(err).__name__,
                    )
                    stats["errors"] += 1
                    stats["failures"].append(key)
            completed = True
        finally:
            if completed or stats["rotated"]:
                await _commit_rotation(store, key_session, new_key, clock)

    logger.info(
        "Key rotation complete: %s",
        {k: v for k, v in stats.items() if k != "failures"},
    )
    return stats
