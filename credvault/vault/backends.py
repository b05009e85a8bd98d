"""
Key-value backends consumed by the vault.

The vault only needs ``read``/``write``/``delete``/``names``. Backends may
implement these as plain functions or coroutines; ``maybe_await`` accepts
either.
"""
import os
import base64
import inspect
import logging
import tempfile
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Union

import orjson

logger = logging.getLogger("credvault.vault")


class KeyValueBackend(Protocol):
    """Durable storage: no transactional guarantees across names."""

    def read(self, name: str) -> Any: ...

    def write(self, name: str, data: bytes) -> Any: ...

    def delete(self, name: str) -> Any: ...

    def names(self) -> Any: ...


async def maybe_await(result: Any) -> Any:
    """Return ``result``, awaiting it first if it is awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result


class MemoryBackend:
    """In-process async backend, mostly for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None):
        self._data: dict[str, bytes] = dict(initial or {})

    async def read(self, name: str) -> Optional[bytes]:
        return self._data.get(name)

    async def write(self, name: str, data: bytes) -> None:
        self._data[name] = bytes(data)

    async def delete(self, name: str) -> None:
        self._data.pop(name, None)

    async def names(self) -> list[str]:
        return list(self._data.keys())

    def snapshot(self) -> dict[str, bytes]:
        """Copy of the raw stored entries."""
        return dict(self._data)


class JsonFileBackend:
    """Synchronous backend persisting every entry in a single JSON document.

    Values are base64 encoded. Each write replaces the file atomically
    (temp file + ``os.replace``), so a crash never leaves a torn document.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._data: dict[str, bytes] = self._load()

    def _load(self) -> dict[str, bytes]:
        if not self._path.exists():
            return {}
        raw = self._path.read_bytes()
        if not raw.strip():
            return {}
        doc = orjson.loads(raw)
        return {name: base64.b64decode(value) for name, value in doc.items()}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        doc = {
            name: base64.b64encode(value).decode("ascii")
            for name, value in self._data.items()
        }
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".credvault-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(orjson.dumps(doc))
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    @property
    def path(self) -> Path:
        return self._path

    def read(self, name: str) -> Optional[bytes]:
        return self._data.get(name)

    def write(self, name: str, data: bytes) -> None:
        self._data[name] = bytes(data)
        self._flush()

    def delete(self, name: str) -> None:
        if self._data.pop(name, None) is not None:
            self._flush()

    def names(self) -> Iterable[str]:
        return list(self._data.keys())
