import asyncio

import pytest

from credvault.session import SessionStore
from credvault.vault.backends import MemoryBackend

STRONG_PASSWORD = "Tr0ub4dor&3!xQ"
OTHER_PASSWORD = "N3w-Passw0rd!zKq"


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    """Collects notifications for assertions."""

    def __init__(self):
        self.notices = []

    def notify(self, kind, message):
        self.notices.append((kind, message))

    def kinds(self):
        return [kind for kind, _ in self.notices]


class FailingBackend(MemoryBackend):
    """Raises OSError when writing any name listed in ``fail_on``."""

    def __init__(self):
        super().__init__()
        self.fail_on = set()

    async def write(self, name, data):
        if name in self.fail_on:
            raise OSError(f"disk full writing {name}")
        await super().write(name, data)


class YieldingBackend(MemoryBackend):
    """Gives up control on every call, like a networked store."""

    async def read(self, name):
        await asyncio.sleep(0)
        return await super().read(name)

    async def write(self, name, data):
        await asyncio.sleep(0)
        await super().write(name, data)

    async def names(self):
        await asyncio.sleep(0)
        return await super().names()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def session_store(clock):
    return SessionStore(clock=clock)


class AsyncSessionStore:
    """Session store with coroutine methods that yield on every call."""

    def __init__(self, inner):
        self.inner = inner

    async def read(self, name):
        await asyncio.sleep(0)
        return self.inner.read(name)

    async def write(self, name, data):
        await asyncio.sleep(0)
        self.inner.write(name, data)

    async def delete(self, name):
        await asyncio.sleep(0)
        self.inner.delete(name)
