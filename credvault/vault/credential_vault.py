"""
CredentialVault — Encrypted credential storage behind a master password.

Provides the public API for the vault:
- ``set_master_password`` / ``verify_master_password`` / ``clear_master_password``
- ``change_master_password``: re-encrypt everything under a new password
- ``get(key)`` / ``set(key, value)`` / ``remove(key)`` / ``keys()``
- ``migrate()`` / ``rotate(password)``: bulk re-encryption
- ``check_rotation_status()`` / ``check_lockout_status()``
- ``open()``: factory that surfaces rotation status at session start

Security Note:
    Never log plaintext or ciphertext values. Only log key names,
    operations and key fingerprints. Decrypted values exist in process
    memory during use.
"""
import time
import logging
from typing import Any, Callable, Optional

from .backends import KeyValueBackend
from .config import VaultConfig
from .key_rotation import migrate_records
from .keys import KeySession
from .master import MasterPasswordManager
from .models import LockoutStatus, RotationStatus, VaultState
from .notify import Notifier, NullNotifier
from .store import RecordStore
from ..session import SessionStore

logger = logging.getLogger("credvault.vault")


class CredentialVault:
    """Encrypted record vault bound to one master password session.

    Args:
        backend: Durable key-value backend for records and bookkeeping.
        session_store: Session-scoped store for the password verifier.
            Defaults to a fresh ``SessionStore``.
        config: Vault configuration, ``VaultConfig()`` by default.
        notifier: Sink for lockout/rotation notices, silent by default.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        session_store: Any = None,
        config: Optional[VaultConfig] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or VaultConfig()
        self._session = session_store if session_store is not None else SessionStore()
        self._key_session = KeySession()
        self._store = RecordStore(backend, self._key_session)
        self._master = MasterPasswordManager(
            self._store,
            self._key_session,
            self._session,
            config=self._config,
            notifier=notifier or NullNotifier(),
            clock=clock,
        )

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def key_session(self) -> KeySession:
        return self._key_session

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def master(self) -> MasterPasswordManager:
        return self._master

    async def state(self) -> VaultState:
        return await self._master.state()

    # ------------------------------------------------------------------
    # Master password
    # ------------------------------------------------------------------

    async def set_master_password(self, password: str) -> dict:
        return await self._master.set_master_password(password)

    async def verify_master_password(self, password: str) -> bool:
        return await self._master.verify_master_password(password)

    async def clear_master_password(self) -> None:
        await self._master.clear_master_password()

    async def change_master_password(self, current: str, new: str) -> dict:
        return await self._master.change_master_password(current, new)

    def check_lockout_status(self) -> LockoutStatus:
        return self._master.check_lockout_status()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get(self, key: str, default: Any = None) -> Any:
        return await self._store.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        await self._store.set(key, value)

    async def remove(self, key: str) -> None:
        await self._store.remove(key)

    async def keys(self) -> list[str]:
        return await self._store.keys()

    # ------------------------------------------------------------------
    # Rotation & migration
    # ------------------------------------------------------------------

    async def migrate(self) -> dict:
        """Encrypt plaintext records under the active key.

        Raises:
            MissingKeyError: If no key is active.
        """
        return await migrate_records(self._store, self._key_session)

    async def rotate(self, password: str) -> dict:
        """Rotate the active key; ``password`` must be the current master password."""
        return await self._master.rotate(password)

    async def check_rotation_status(self) -> RotationStatus:
        return await self._master.check_rotation_status()

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        backend: KeyValueBackend,
        session_store: Any = None,
        config: Optional[VaultConfig] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ) -> "CredentialVault":
        """Create a vault and surface its rotation status.

        This is the primary constructor used at session start. Rotation
        notices are only emitted once a master password has been set up.
        """
        vault = cls(
            backend,
            session_store=session_store,
            config=config,
            notifier=notifier,
            clock=clock,
        )
        state = await vault.state()
        if state is not VaultState.UNINITIALIZED:
            await vault.master.notify_rotation_status()
        logger.info("Vault opened: state=%s", state.value)
        return vault
