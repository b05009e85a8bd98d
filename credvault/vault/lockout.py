"""
Brute-force protection for master password verification.

Attempts live in memory only; restarting the process resets the counters.
"""
import math
import time
import logging
from collections import deque
from typing import Callable, NamedTuple

from .models import LockoutStatus

logger = logging.getLogger("credvault.vault")

MAX_ATTEMPTS = 5
LOCKOUT_DURATION_MINUTES = 15


class Attempt(NamedTuple):
    timestamp: float
    success: bool


class AttemptLog:
    """Sliding-window log of verification attempts.

    Args:
        max_attempts: Failed attempts within the window that trigger a lockout.
        window: Window length in seconds.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        window: float = LOCKOUT_DURATION_MINUTES * 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.window = window
        self._clock = clock
        self._attempts: deque[Attempt] = deque()

    def __len__(self) -> int:
        return len(self._attempts)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window
        while self._attempts and self._attempts[0].timestamp <= cutoff:
            self._attempts.popleft()

    def failures(self) -> list[Attempt]:
        """Failed attempts still inside the window, oldest first."""
        self._prune(self._clock())
        return [a for a in self._attempts if not a.success]

    def check(self) -> LockoutStatus:
        """Report whether a new attempt may be made right now."""
        now = self._clock()
        failed = self.failures()
        if len(failed) >= self.max_attempts:
            lockout_end = failed[0].timestamp + self.window
            minutes = max(1, math.ceil((lockout_end - now) / 60))
            return LockoutStatus(
                allowed=False, remaining_attempts=0, lockout_minutes=minutes,
            )
        return LockoutStatus(
            allowed=True, remaining_attempts=self.max_attempts - len(failed),
        )

    def record(self, success: bool) -> None:
        """Append the outcome of a completed verification."""
        now = self._clock()
        self._prune(now)
        self._attempts.append(Attempt(now, success))
        if not success:
            logger.info(
                "Failed master password attempt (%d in window)",
                sum(1 for a in self._attempts if not a.success),
            )

    def reset(self) -> None:
        self._attempts.clear()
