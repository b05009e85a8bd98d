"""
Notification sink for lockout, authentication and rotation notices.

Notifications are fire-and-forget. The vault works the same with
``NullNotifier``.
"""
import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger("credvault.vault")


class NoticeKind(str, Enum):
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILED = "auth_failed"
    LOCKOUT = "lockout"
    PASSWORD_SET = "password_set"
    ROTATION_REQUIRED = "rotation_required"
    ROTATION_WARNING = "rotation_warning"
    ROTATION_COMPLETE = "rotation_complete"
    ROTATION_FAILED = "rotation_failed"


class Notifier(Protocol):
    def notify(self, kind: NoticeKind, message: str) -> None: ...


class NullNotifier:
    """Discards every notification."""

    def notify(self, kind: NoticeKind, message: str) -> None:
        pass


class LoggingNotifier:
    """Writes notifications to the vault logger."""

    _LEVELS = {
        NoticeKind.AUTH_FAILED: logging.WARNING,
        NoticeKind.LOCKOUT: logging.WARNING,
        NoticeKind.ROTATION_REQUIRED: logging.WARNING,
        NoticeKind.ROTATION_WARNING: logging.WARNING,
        NoticeKind.ROTATION_FAILED: logging.ERROR,
    }

    def __init__(self, name: str = "credvault.notify"):
        self._logger = logging.getLogger(name)

    def notify(self, kind: NoticeKind, message: str) -> None:
        level = self._LEVELS.get(kind, logging.INFO)
        self._logger.log(level, "[%s] %s", kind.value, message)


def safe_notify(notifier: Notifier, kind: NoticeKind, message: str) -> None:
    """Deliver a notification without letting sink errors reach the caller."""
    try:
        notifier.notify(kind, message)
    except Exception as err:
        logger.warning("Notifier failed for %s: %s", kind.value, err)
