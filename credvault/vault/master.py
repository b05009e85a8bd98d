"""
Master Password Manager — establishes and verifies the master password,
owns the lockout log and drives key installation, migration and rotation.

Only a SHA-256 verifier of the password is kept, in the session-scoped
store. The password itself is dropped as soon as the key is derived.
"""
import hmac
import string
import asyncio
import secrets
import time
import logging
from typing import Any, Callable, Optional

from .backends import maybe_await
from .config import VaultConfig
from .crypto import KeyHandle, decrypt_bytes, derive_key, generate_salt, hash_password
from .exceptions import AuthenticationError, DecryptionError, LockoutError, WeakPasswordError
from .key_rotation import (
    check_rotation_status,
    load_bookkeeping,
    migrate_records,
    rotate_key,
    save_bookkeeping,
)
from .keys import KeySession
from .lockout import AttemptLog
from .models import (
    EncryptedRecord,
    LockoutStatus,
    PasswordStrength,
    RotationBookkeeping,
    RotationStatus,
    VaultState,
)
from .notify import NoticeKind, Notifier, NullNotifier, safe_notify
from .store import RecordStore

logger = logging.getLogger("credvault.vault")

VERIFIER_NAME = "master_password_hash"

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
PASSWORD_CHARSET = string.ascii_uppercase + string.ascii_lowercase + string.digits + SPECIAL_CHARACTERS
MIN_PASSWORD_LENGTH = 12


def validate_password_strength(password: str, threshold: int = 6) -> PasswordStrength:
    """Score a candidate master password.

    Length of at least 12 is worth two points; uppercase, lowercase, digits,
    special characters and high character diversity one point each.
    """
    requirements = []
    score = 0
    if len(password) >= MIN_PASSWORD_LENGTH:
        score += 2
    else:
        requirements.append(f"At least {MIN_PASSWORD_LENGTH} characters")
    if any(c.isupper() for c in password):
        score += 1
    else:
        requirements.append("Uppercase letters")
    if any(c.islower() for c in password):
        score += 1
    else:
        requirements.append("Lowercase letters")
    if any(c.isdigit() for c in password):
        score += 1
    else:
        requirements.append("Numbers")
    if any(c in SPECIAL_CHARACTERS for c in password):
        score += 1
    else:
        requirements.append("Special characters")
    if password and len(set(password)) >= len(password) * 0.7:
        score += 1
    else:
        requirements.append("High character diversity")
    return PasswordStrength(
        is_valid=score >= threshold, score=score, requirements=requirements,
    )


def generate_master_password(length: int = 32) -> str:
    """Generate a random master password from the full character set."""
    if length < MIN_PASSWORD_LENGTH:
        raise ValueError(f"length must be at least {MIN_PASSWORD_LENGTH}")
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


class MasterPasswordManager:
    """Master password lifecycle.

    Args:
        store: Record store whose records the key protects.
        key_session: Owner of the active key.
        session_store: Session-scoped store holding the password verifier.
        config: Vault configuration.
        notifier: Sink for user-facing notices.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        store: RecordStore,
        key_session: KeySession,
        session_store: Any,
        config: Optional[VaultConfig] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._keys = key_session
        self._session = session_store
        self._config = config or VaultConfig()
        self._notifier = notifier or NullNotifier()
        self._clock = clock
        self._attempts = AttemptLog(
            max_attempts=self._config.max_attempts,
            window=self._config.lockout_window,
            clock=clock,
        )
        self._verify_lock = asyncio.Lock()

    @property
    def attempts(self) -> AttemptLog:
        return self._attempts

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    async def _verifier(self) -> Optional[str]:
        raw = await maybe_await(self._session.read(VERIFIER_NAME))
        if raw is None:
            return None
        return raw.decode("ascii") if isinstance(raw, bytes) else str(raw)

    async def state(self) -> VaultState:
        if await self._verifier() is None:
            return VaultState.UNINITIALIZED
        if self._keys.has_key and self._attempts.check().allowed:
            return VaultState.UNLOCKED
        return VaultState.LOCKED

    async def has_master_password(self) -> bool:
        return await self._verifier() is not None

    def check_lockout_status(self) -> LockoutStatus:
        return self._attempts.check()

    async def check_rotation_status(self) -> RotationStatus:
        bookkeeping = await load_bookkeeping(self._store)
        return check_rotation_status(
            bookkeeping,
            int(self._clock() * 1000),
            interval_days=self._config.rotation_interval_days,
            warning_days=self._config.rotation_warning_days,
        )

    async def notify_rotation_status(self) -> RotationStatus:
        """Check rotation status and surface it through the notifier."""
        status = await self.check_rotation_status()
        if status.needs_rotation:
            safe_notify(
                self._notifier, NoticeKind.ROTATION_REQUIRED,
                "Your encryption key needs to be rotated. Please update your master password.",
            )
        elif status.warning:
            safe_notify(
                self._notifier, NoticeKind.ROTATION_WARNING,
                f"Your encryption key will need rotation in {status.days_until_needed} days.",
            )
        return status

    # ------------------------------------------------------------------
    # Key derivation helpers
    # ------------------------------------------------------------------

    async def _installation_salt(self) -> tuple[bytes, Optional[RotationBookkeeping]]:
        bookkeeping = await load_bookkeeping(self._store)
        if bookkeeping is not None and bookkeeping.kdf_salt:
            return bookkeeping.kdf_salt, bookkeeping
        return self._config.kdf_salt or generate_salt(), bookkeeping

    def _derive(self, password: str, salt: bytes) -> KeyHandle:
        return derive_key(password, salt, self._config.kdf_iterations)

    def _require_strength(self, password: str) -> None:
        strength = validate_password_strength(password, self._config.min_password_score)
        if not strength.is_valid:
            raise WeakPasswordError(strength.requirements)

    async def _opens_existing_records(self, key: KeyHandle) -> bool:
        """True unless encrypted records exist and ``key`` opens none of them."""
        found = False
        for name in await self._store.keys():
            try:
                record = await self._store.load(name)
            except (DecryptionError, ValueError):
                continue
            if not isinstance(record, EncryptedRecord):
                continue
            found = True
            try:
                decrypt_bytes(record.envelope, key)
            except DecryptionError:
                continue
            return True
        return not found

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_master_password(self, password: str) -> dict:
        """Establish the master password and encrypt existing plaintext records.

        Returns:
            Migration stats.

        Raises:
            WeakPasswordError: If the password is below the strength threshold.
            KeyDerivationError: If key derivation fails.
            AuthenticationError: If encrypted records exist and the password
                does not open them; use ``change_master_password`` instead.
        """
        self._require_strength(password)
        salt, bookkeeping = await self._installation_salt()
        key = self._derive(password, salt)
        verifier = hash_password(password)
        del password

        if not await self._opens_existing_records(key):
            logger.warning("Refusing key %s: existing records use another key", key.fingerprint)
            raise AuthenticationError(
                "Existing encrypted records use a different master password"
            )

        self._keys.install(key)
        await maybe_await(self._session.write(VERIFIER_NAME, verifier.encode("ascii")))

        if bookkeeping is None:
            bookkeeping = RotationBookkeeping(
                last_key_rotation=int(self._clock() * 1000),
                key_rotation_required=False,
                kdf_salt=salt,
            )
            await save_bookkeeping(self._store, bookkeeping)
        elif not bookkeeping.kdf_salt:
            bookkeeping.kdf_salt = salt
            await save_bookkeeping(self._store, bookkeeping)

        stats = await migrate_records(self._store, self._keys)
        safe_notify(
            self._notifier, NoticeKind.PASSWORD_SET,
            "Encryption is now active",
        )
        logger.info("Master password set, key %s active", key.fingerprint)
        return stats

    async def verify_master_password(self, password: str) -> bool:
        """Check a candidate password against the stored verifier.

        On success the derived key is installed if none is active and the
        rotation status is surfaced. Verifications are serialized, so
        concurrent guesses cannot all pass the lockout check before any
        failure is recorded.

        Raises:
            LockoutError: If too many attempts failed within the window.
        """
        async with self._verify_lock:
            return await self._verify(password)

    async def _verify(self, password: str) -> bool:
        status = self._attempts.check()
        if not status.allowed:
            safe_notify(
                self._notifier, NoticeKind.LOCKOUT,
                f"Account locked. Please try again in {status.lockout_minutes} minutes.",
            )
            raise LockoutError(status.lockout_minutes)

        stored = await self._verifier()
        candidate = hash_password(password)
        verified = stored is not None and hmac.compare_digest(candidate, stored)
        self._attempts.record(verified)

        if not verified:
            remaining = status.remaining_attempts - 1
            if remaining > 0:
                safe_notify(
                    self._notifier, NoticeKind.AUTH_FAILED,
                    f"Please try again. You have {remaining} attempts remaining.",
                )
            else:
                lockout = self._attempts.check()
                safe_notify(
                    self._notifier, NoticeKind.LOCKOUT,
                    f"Account locked. Please try again in {lockout.lockout_minutes} minutes.",
                )
            return False

        if not self._keys.has_key:
            salt, _ = await self._installation_salt()
            self._keys.install(self._derive(password, salt))
        await self.notify_rotation_status()
        safe_notify(self._notifier, NoticeKind.AUTH_SUCCESS, "Access granted")
        return True

    async def clear_master_password(self) -> None:
        """Forget the active key and the verifier."""
        self._keys.clear()
        await maybe_await(self._session.delete(VERIFIER_NAME))
        logger.info("Master password cleared")

    async def _authenticate(self, password: str) -> None:
        if not await self.verify_master_password(password):
            raise AuthenticationError()

    async def rotate(self, password: str) -> dict:
        """Rotate to a new key derived from the same password and a new salt.

        Raises:
            AuthenticationError: If the password does not verify.
            LockoutError: If verification is locked out.
            RotationInProgress: If another rotation is running.
        """
        await self._authenticate(password)
        new_key = self._derive(password, generate_salt())
        del password
        try:
            stats = await rotate_key(self._store, self._keys, new_key, self._clock)
        except Exception:
            safe_notify(
                self._notifier, NoticeKind.ROTATION_FAILED,
                "Failed to rotate encryption key",
            )
            raise
        safe_notify(
            self._notifier, NoticeKind.ROTATION_COMPLETE,
            "Your encryption key has been securely rotated",
        )
        return stats

    async def change_master_password(self, current: str, new: str) -> dict:
        """Replace the master password and re-encrypt every record under it.

        Raises:
            AuthenticationError: If ``current`` does not verify.
            WeakPasswordError: If ``new`` is below the strength threshold.
        """
        self._require_strength(new)
        await self._authenticate(current)
        new_key = self._derive(new, generate_salt())
        verifier = hash_password(new)
        del current, new
        try:
            stats = await rotate_key(self._store, self._keys, new_key, self._clock)
        except Exception:
            safe_notify(
                self._notifier, NoticeKind.ROTATION_FAILED,
                "Failed to rotate encryption key",
            )
            raise
        await maybe_await(self._session.write(VERIFIER_NAME, verifier.encode("ascii")))
        safe_notify(
            self._notifier, NoticeKind.ROTATION_COMPLETE,
            "Master password changed and data re-encrypted",
        )
        return stats
