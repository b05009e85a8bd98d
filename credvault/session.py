import uuid
import time
from typing import Callable, Optional
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping


class SessionStore(MutableMapping[str, bytes]):
    """Session-scoped key-value store.

    Lives only as long as the application session: ``invalidate()`` (or
    letting the session age past ``max_age``) drops every entry. The vault
    keeps its master password verifier here, never the password itself.

    Offers both the mapping protocol and the ``read``/``write``/``delete``
    shape the vault expects from a backend.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, bytes]] = None,
        id: Optional[str] = None,
        max_age: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._data: dict[str, bytes] = {}
        self._changed = False
        self._id_ = id or uuid.uuid4().hex
        self._new = not data
        self._max_age = max_age
        self._clock = clock
        self._created = int(clock())
        if data is not None:
            self._data.update(data)

    def __repr__(self) -> str:
        return (
            f'<Vault-Session [new:{self.new}, created:{self.created}] '
            f'keys={list(self._data.keys())}>'
        )

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def created(self) -> int:
        return self._created

    @property
    def logon_time(self) -> datetime:
        return datetime.fromtimestamp(self._created, tz=timezone.utc)

    @property
    def empty(self) -> bool:
        return not bool(self._data)

    @property
    def max_age(self) -> Optional[int]:
        return self._max_age

    @max_age.setter
    def max_age(self, value: Optional[int]) -> None:
        self._max_age = value

    @property
    def expired(self) -> bool:
        if self._max_age is None:
            return False
        return int(self._clock()) - self._created > self._max_age

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def invalidate(self) -> None:
        """Clear all session data."""
        self._changed = True
        self._data = {}

    def _check_expiry(self) -> None:
        if self.expired and self._data:
            self.invalidate()

    # --- Backend protocol ---

    def read(self, name: str) -> Optional[bytes]:
        self._check_expiry()
        return self._data.get(name)

    def write(self, name: str, data: bytes) -> None:
        self._check_expiry()
        self._data[name] = bytes(data)
        self._changed = True

    def delete(self, name: str) -> None:
        if self._data.pop(name, None) is not None:
            self._changed = True

    def names(self) -> list[str]:
        self._check_expiry()
        return list(self._data.keys())

    # --- Magic Methods ---

    def __len__(self) -> int:
        self._check_expiry()
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        self._check_expiry()
        return iter(list(self._data))

    def __contains__(self, key: object) -> bool:
        self._check_expiry()
        return key in self._data

    def __getitem__(self, key: str) -> bytes:
        self._check_expiry()
        return self._data[key]

    def __setitem__(self, key: str, value: bytes) -> None:
        self.write(key, value)

    def __delitem__(self, key: str) -> None:
        if key not in self._data:
            raise KeyError(key)
        self.delete(key)
