"""
End-to-end tests for CredentialVault.

Tests cover:
- Transparent encryption of records after the master password is set
- Migration of records written before the master password existed
- The ``open()`` factory and rotation notices
- Password change, rotation and lockout through the public API
- A file-backed vault reopened in a new process
"""
import asyncio

import orjson
import pytest

from credvault import CredentialVault, SessionStore, VaultConfig
from credvault.vault import (
    AuthenticationError,
    JsonFileBackend,
    LockoutError,
    MissingKeyError,
    NoticeKind,
    VaultState,
)
from credvault.vault.key_rotation import save_bookkeeping
from credvault.vault.models import RotationBookkeeping

from conftest import OTHER_PASSWORD, STRONG_PASSWORD, YieldingBackend


@pytest.fixture
def vault(backend, session_store, notifier, clock):
    return CredentialVault(
        backend, session_store=session_store, notifier=notifier, clock=clock,
    )


class TestTransparentEncryption:

    @pytest.mark.asyncio
    async def test_set_then_get_after_password(self, vault, backend):
        """A value written under the master password reads back unchanged."""
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("host1", {"user": "root"})

        assert await vault.get("host1") == {"user": "root"}
        raw = backend.snapshot()
        assert b"root" not in raw["host1"]
        assert orjson.loads(raw["host1#meta"])["encrypted"] is True

    @pytest.mark.asyncio
    async def test_plaintext_migrated_on_password_set(self, vault, backend):
        """Records written before the password exists are encrypted by setup."""
        await vault.set("host1", {"user": "root"})
        assert orjson.loads(backend.snapshot()["host1"]) == {"user": "root"}

        stats = await vault.set_master_password(STRONG_PASSWORD)

        assert stats["migrated"] == 1
        assert b"root" not in backend.snapshot()["host1"]
        assert await vault.get("host1") == {"user": "root"}

    @pytest.mark.asyncio
    async def test_keys_and_remove(self, vault):
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("b", 1)
        await vault.set("a", 2)
        assert await vault.keys() == ["a", "b"]
        await vault.remove("a")
        assert await vault.keys() == ["b"]

    @pytest.mark.asyncio
    async def test_migrate_requires_key(self, vault):
        with pytest.raises(MissingKeyError):
            await vault.migrate()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_state_transitions(self, vault):
        assert await vault.state() is VaultState.UNINITIALIZED
        await vault.set_master_password(STRONG_PASSWORD)
        assert await vault.state() is VaultState.UNLOCKED
        await vault.clear_master_password()
        assert await vault.state() is VaultState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_new_vault_over_same_storage_is_locked(
        self, vault, backend, session_store, clock,
    ):
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("host1", {"user": "root"})

        reopened = CredentialVault(backend, session_store=session_store, clock=clock)
        assert await reopened.state() is VaultState.LOCKED
        with pytest.raises(MissingKeyError):
            await reopened.get("host1")
        assert await reopened.verify_master_password(STRONG_PASSWORD) is True
        assert await reopened.get("host1") == {"user": "root"}

    @pytest.mark.asyncio
    async def test_lockout_through_vault(self, vault):
        await vault.set_master_password(STRONG_PASSWORD)
        for _ in range(5):
            await vault.verify_master_password("wrong")
        assert vault.check_lockout_status().allowed is False
        with pytest.raises(LockoutError):
            await vault.verify_master_password(STRONG_PASSWORD)

    @pytest.mark.asyncio
    async def test_custom_config(self, backend, session_store, clock):
        config = VaultConfig(max_attempts=2, lockout_minutes=1)
        vault = CredentialVault(
            backend, session_store=session_store, config=config, clock=clock,
        )
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.verify_master_password("wrong")
        await vault.verify_master_password("wrong")
        status = vault.check_lockout_status()
        assert status.allowed is False
        assert status.lockout_minutes == 1
        clock.advance(61)
        assert vault.check_lockout_status().allowed is True

    def test_default_session_store(self, backend):
        vault = CredentialVault(backend)
        assert vault.config == VaultConfig()
        assert vault.key_session.has_key is False


class TestOpen:
    """Tests for the CredentialVault.open factory."""

    @pytest.mark.asyncio
    async def test_open_uninitialized_is_silent(self, backend, notifier):
        vault = await CredentialVault.open(backend, notifier=notifier)
        assert await vault.state() is VaultState.UNINITIALIZED
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_open_reports_required_rotation(
        self, vault, backend, session_store, notifier, clock,
    ):
        await vault.set_master_password(STRONG_PASSWORD)
        await save_bookkeeping(vault.store, RotationBookkeeping(
            last_key_rotation=int(clock() * 1000),
            key_rotation_required=True,
            kdf_salt=vault.key_session.active_key.salt,
        ))
        notifier.notices.clear()

        await CredentialVault.open(
            backend, session_store=session_store, notifier=notifier, clock=clock,
        )
        assert notifier.kinds() == [NoticeKind.ROTATION_REQUIRED]

    @pytest.mark.asyncio
    async def test_open_reports_warning(
        self, vault, backend, session_store, notifier, clock,
    ):
        await vault.set_master_password(STRONG_PASSWORD)
        notifier.notices.clear()
        clock.advance(85 * 24 * 3600)

        await CredentialVault.open(
            backend, session_store=session_store, notifier=notifier, clock=clock,
        )
        kind, message = notifier.notices[0]
        assert kind is NoticeKind.ROTATION_WARNING
        assert "5 days" in message


class TestPasswordChangeAndRotation:

    @pytest.mark.asyncio
    async def test_change_master_password(self, vault, backend, session_store, clock):
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("host1", {"user": "root"})

        stats = await vault.change_master_password(STRONG_PASSWORD, OTHER_PASSWORD)
        assert stats["rotated"] == 1

        reopened = CredentialVault(backend, session_store=session_store, clock=clock)
        assert await reopened.verify_master_password(STRONG_PASSWORD) is False
        assert await reopened.verify_master_password(OTHER_PASSWORD) is True
        assert await reopened.get("host1") == {"user": "root"}

    @pytest.mark.asyncio
    async def test_rotate_wrong_password(self, vault, notifier):
        await vault.set_master_password(STRONG_PASSWORD)
        with pytest.raises(AuthenticationError):
            await vault.rotate("Wrong-Passw0rd!!")
        assert NoticeKind.ROTATION_COMPLETE not in notifier.kinds()

    @pytest.mark.asyncio
    async def test_rotate_resets_status(self, vault, clock):
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("host1", "secret")
        clock.advance(100 * 24 * 3600)
        assert (await vault.check_rotation_status()).needs_rotation is True

        await vault.rotate(STRONG_PASSWORD)

        status = await vault.check_rotation_status()
        assert status.needs_rotation is False
        assert status.days_until_needed == 90
        assert await vault.get("host1") == "secret"


class TestFileBackedVault:

    @pytest.mark.asyncio
    async def test_reopen_from_disk(self, tmp_path, clock):
        path = tmp_path / "vault.json"
        session = SessionStore(clock=clock)
        vault = CredentialVault(JsonFileBackend(path), session_store=session, clock=clock)
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("host1", {"user": "root", "port": 22})

        reopened = CredentialVault(JsonFileBackend(path), session_store=session, clock=clock)
        assert await reopened.verify_master_password(STRONG_PASSWORD) is True
        assert await reopened.get("host1") == {"user": "root", "port": 22}


class TestInterleavedOperations:
    """Public operations issued concurrently on one event loop."""

    @pytest.mark.asyncio
    async def test_set_racing_rotate_keeps_latest_value(self, session_store, clock):
        vault = CredentialVault(YieldingBackend(), session_store=session_store, clock=clock)
        await vault.set_master_password(STRONG_PASSWORD)
        await vault.set("a", "old-a")
        await vault.set("b", "old-b")

        await asyncio.gather(
            vault.rotate(STRONG_PASSWORD),
            vault.set("a", "new-a"),
        )

        assert await vault.get("a") == "new-a"
        assert await vault.get("b") == "old-b"

    @pytest.mark.asyncio
    async def test_reads_during_rotation_see_plaintext(self, session_store, clock):
        vault = CredentialVault(YieldingBackend(), session_store=session_store, clock=clock)
        await vault.set_master_password(STRONG_PASSWORD)
        for name in ("a", "b", "c"):
            await vault.set(name, name.upper())

        _, *values = await asyncio.gather(
            vault.rotate(STRONG_PASSWORD),
            vault.get("a"),
            vault.get("c"),
        )

        assert values == ["A", "C"]
