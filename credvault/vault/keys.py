"""
KeySession — ownership of the single active key.

The active key is passed around explicitly instead of living in a module
global. Only the master password manager and the rotation engine replace it.
"""
import asyncio
import logging
from typing import Optional

from .crypto import KeyHandle
from .exceptions import MissingKeyError

logger = logging.getLogger("credvault.vault")


class KeySession:
    """Holds at most one active key and the rotation mutex.

    Replacing the key does not wipe the previous handle: an operation that
    already captured it can still finish, since the old key stays valid for
    data it wrote.
    """

    def __init__(self) -> None:
        self._active: Optional[KeyHandle] = None
        self.rotation_lock = asyncio.Lock()

    @property
    def active_key(self) -> Optional[KeyHandle]:
        return self._active

    @property
    def has_key(self) -> bool:
        return self._active is not None

    def require_key(self) -> KeyHandle:
        """Return the active key.

        Raises:
            MissingKeyError: If no key is installed.
        """
        if self._active is None:
            raise MissingKeyError()
        return self._active

    def install(self, key: KeyHandle) -> None:
        """Make ``key`` the active key, replacing any previous one."""
        previous = self._active
        self._active = key
        if previous is not None and previous != key:
            logger.info(
                "Active key replaced: %s -> %s",
                previous.fingerprint, key.fingerprint,
            )
        else:
            logger.debug("Active key installed: %s", key.fingerprint)

    def clear(self) -> None:
        """Drop the active key."""
        if self._active is not None:
            logger.debug("Active key cleared: %s", self._active.fingerprint)
        self._active = None

    @property
    def rotating(self) -> bool:
        return self.rotation_lock.locked()

    async def wait_for_rotation(self) -> None:
        """Return once no rotation is running."""
        if self.rotation_lock.locked():
            async with self.rotation_lock:
                pass
