"""Tests for the credential vault."""

import threading

import pytest

from voxgate.errors import AuthenticationError, DecryptionError, UninitializedError
from voxgate.security import vault as vault_module
from voxgate.security.encryption import generate_salt
from voxgate.security.storage import JsonFileStore, MemoryStore
from voxgate.security.vault import (
    PASSWORD_HASH_KEY,
    SALT_KEY,
    SECRET_PREFIX,
    CredentialVault,
    VaultSession,
)

TEST_KDF_ITERATIONS = 1000
TEST_PASSWORD = "correct-password1"


class FailingStore(MemoryStore):
    """MemoryStore whose Nth write raises OSError (a full disk)."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.writes = 0

    def _write(self) -> None:
        self.writes += 1
        if self.writes == self.fail_on:
            raise OSError("No space left on device")

    def set(self, key, value):
        self._write()
        super().set(key, value)

    def set_many(self, items):
        self._write()
        super().set_many(items)


class TestInitialize:
    """Test vault setup and unlock."""

    def test_first_run_persists_salt_and_verifier(self, vault, memory_store):
        """Test that first initialize writes salt and verifier, never the password."""
        session = vault.initialize(TEST_PASSWORD)

        assert session.is_active
        assert memory_store.get(SALT_KEY)
        assert memory_store.get(PASSWORD_HASH_KEY)
        assert TEST_PASSWORD not in memory_store.get(PASSWORD_HASH_KEY)
        assert vault.is_setup

    def test_second_run_accepts_same_password(self, vault):
        """Test that re-initializing with the same password succeeds."""
        vault.initialize(TEST_PASSWORD)
        assert vault.initialize(TEST_PASSWORD).is_active

    def test_wrong_password_raises(self, vault):
        """Test that a mismatched password is rejected."""
        vault.initialize(TEST_PASSWORD)
        with pytest.raises(AuthenticationError):
            vault.initialize("wrong-password")

    @pytest.mark.parametrize("password", ["", "   "])
    def test_empty_password_rejected(self, vault, password):
        """Test that empty passwords are rejected before touching the store."""
        with pytest.raises(ValueError):
            vault.initialize(password)
        assert not vault.is_setup


class TestValidatePassword:
    """Test password validation without a session."""

    def test_no_verifier_returns_false(self, vault):
        """Test validation before setup."""
        assert vault.validate_password(TEST_PASSWORD) is False

    def test_correct_and_wrong(self, vault):
        """Test validation after setup."""
        vault.initialize(TEST_PASSWORD)
        assert vault.validate_password(TEST_PASSWORD) is True
        assert vault.validate_password("wrong-password") is False
        assert vault.validate_password("") is False


class TestEncryptDecrypt:
    """Test session-scoped encryption."""

    def test_round_trip(self, vault, session):
        """Test encrypt then decrypt with the same session."""
        encrypted = vault.encrypt(session, "hello")
        assert encrypted != "hello"
        assert vault.decrypt(session, encrypted) == "hello"

    def test_requires_session(self, vault):
        """Test that encrypt without a session fails."""
        with pytest.raises(UninitializedError):
            vault.encrypt(None, "hello")

    def test_closed_session_rejected(self, vault, session):
        """Test that a closed session can no longer decrypt."""
        encrypted = vault.encrypt(session, "hello")
        session.close()
        with pytest.raises(UninitializedError):
            vault.decrypt(session, encrypted)

    def test_session_repr_hides_password(self):
        """Test that the session repr does not leak the password."""
        assert "secret-pw" not in repr(VaultSession("secret-pw"))


class TestSecrets:
    """Test provider secret storage."""

    def test_set_and_get(self, vault, session, memory_store):
        """Test storing and reading a provider secret."""
        vault.set_secret(session, "elevenlabs", "sk-abc123")

        stored = memory_store.get(f"{SECRET_PREFIX}elevenlabs")
        assert stored and "sk-abc123" not in stored
        assert vault.get_secret(session, "elevenlabs") == "sk-abc123"

    def test_ids_and_secrets_are_trimmed(self, vault, session):
        """Test that provider ids are normalized and secrets stripped."""
        vault.set_secret(session, "  ElevenLabs ", "  sk-abc123\n")
        assert vault.get_secret(session, "elevenlabs") == "sk-abc123"

    def test_missing_secret_returns_none(self, vault, session):
        """Test that an absent secret is None, not an error."""
        assert vault.get_secret(session, "google") is None

    def test_unreadable_secret_raises(self, vault, session, memory_store):
        """Test that a corrupted secret is distinguishable from a missing one."""
        memory_store.set(f"{SECRET_PREFIX}google", "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA")
        with pytest.raises(DecryptionError) as exc_info:
            vault.get_secret(session, "google")
        assert exc_info.value.provider_id == "google"

    def test_empty_secret_rejected(self, vault, session):
        """Test that blank secrets are rejected."""
        with pytest.raises(ValueError):
            vault.set_secret(session, "google", "   ")

    def test_remove_and_list(self, vault, session):
        """Test removal and listing of stored providers."""
        vault.set_secret(session, "google", "key-1")
        vault.set_secret(session, "azure", "key-2")
        assert vault.list_providers() == ["azure", "google"]

        vault.remove_secret("google")
        assert vault.has_secret("google") is False
        assert vault.list_providers() == ["azure"]

    def test_reset_erases_everything(self, vault, session, memory_store):
        """Test that reset wipes salt, verifier and secrets."""
        vault.set_secret(session, "google", "key-1")
        vault.reset()
        assert len(memory_store) == 0
        assert not vault.is_setup


class TestChangePassword:
    """Test master password change."""

    def test_secrets_survive_password_change(self, vault, session):
        """Test that stored secrets are readable under the new password."""
        vault.set_secret(session, "elevenlabs", "sk-abc123")

        new_session = vault.change_password(session, TEST_PASSWORD, "new-password2")

        assert not session.is_active
        assert vault.get_secret(new_session, "elevenlabs") == "sk-abc123"
        assert vault.validate_password("new-password2") is True
        assert vault.validate_password(TEST_PASSWORD) is False

    def test_salt_changes(self, vault, session, memory_store):
        """Test that a new salt is generated."""
        old_salt = memory_store.get(SALT_KEY)
        vault.change_password(session, TEST_PASSWORD, "new-password2")
        assert memory_store.get(SALT_KEY) != old_salt

    def test_wrong_old_password(self, vault, session):
        """Test that the old password must match."""
        with pytest.raises(AuthenticationError):
            vault.change_password(session, "wrong-password", "new-password2")
        assert vault.validate_password(TEST_PASSWORD) is True

    def test_empty_new_password(self, vault, session):
        """Test that an empty new password is rejected."""
        with pytest.raises(ValueError):
            vault.change_password(session, TEST_PASSWORD, "")

    def test_requires_session(self, vault):
        """Test that a session is required."""
        vault.initialize(TEST_PASSWORD)
        with pytest.raises(UninitializedError):
            vault.change_password(None, TEST_PASSWORD, "new-password2")

    def test_unreadable_secret_aborts_without_changes(self, vault, session, memory_store):
        """Test that nothing is written when a secret cannot be re-encrypted."""
        vault.set_secret(session, "elevenlabs", "sk-abc123")
        memory_store.set(f"{SECRET_PREFIX}google", "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA")
        before = {k: memory_store.get(k) for k in memory_store.keys()}

        with pytest.raises(DecryptionError) as exc_info:
            vault.change_password(session, TEST_PASSWORD, "new-password2")

        assert exc_info.value.provider_id == "google"
        assert {k: memory_store.get(k) for k in memory_store.keys()} == before
        assert session.is_active

    def test_failed_write_leaves_old_password_working(self):
        """Test that a store failure mid-change orphans no secret."""
        store = FailingStore(fail_on=0)
        vault = CredentialVault(store, iterations=TEST_KDF_ITERATIONS)
        session = vault.initialize(TEST_PASSWORD)
        vault.set_secret(session, "elevenlabs", "sk-abc123")
        vault.set_secret(session, "google", "g-key")
        before = {k: store.get(k) for k in store.keys()}

        store.fail_on = store.writes + 1
        with pytest.raises(OSError):
            vault.change_password(session, TEST_PASSWORD, "new-password2")

        assert {k: store.get(k) for k in store.keys()} == before
        reopened = CredentialVault(store, iterations=TEST_KDF_ITERATIONS)
        old_session = reopened.initialize(TEST_PASSWORD)
        assert reopened.get_secret(old_session, "elevenlabs") == "sk-abc123"
        assert reopened.get_secret(old_session, "google") == "g-key"

    def test_failed_file_write_leaves_old_password_working(self, tmp_path, monkeypatch):
        """Test the same guarantee for the file-backed store."""
        path = tmp_path / "vault.json"
        vault = CredentialVault(JsonFileStore(path), iterations=TEST_KDF_ITERATIONS)
        session = vault.initialize(TEST_PASSWORD)
        vault.set_secret(session, "elevenlabs", "sk-abc123")
        vault.set_secret(session, "google", "g-key")
        on_disk = path.read_text()

        def full_disk(src, dst):
            raise OSError("No space left on device")

        monkeypatch.setattr("voxgate.security.storage.os.replace", full_disk)
        with pytest.raises(OSError):
            vault.change_password(session, TEST_PASSWORD, "new-password2")
        monkeypatch.undo()

        assert path.read_text() == on_disk
        assert vault.validate_password(TEST_PASSWORD) is True
        assert vault.get_secret(session, "elevenlabs") == "sk-abc123"

        reopened = CredentialVault(JsonFileStore(path), iterations=TEST_KDF_ITERATIONS)
        old_session = reopened.initialize(TEST_PASSWORD)
        assert reopened.get_secret(old_session, "google") == "g-key"


class TestLocking:
    """Test what the vault lock covers."""

    def test_key_derivation_runs_outside_lock(self, vault, session, monkeypatch):
        """Test that another thread can take the lock while PBKDF2 runs."""
        observed = []
        real_derive = vault_module.derive_key_from_password

        def try_lock():
            acquired = vault._lock.acquire(blocking=False)
            if acquired:
                vault._lock.release()
            observed.append(acquired)

        def derive(*args, **kwargs):
            other = threading.Thread(target=try_lock)
            other.start()
            other.join()
            return real_derive(*args, **kwargs)

        monkeypatch.setattr(vault_module, "derive_key_from_password", derive)

        vault.set_secret(session, "elevenlabs", "sk-abc123")
        assert vault.get_secret(session, "elevenlabs") == "sk-abc123"
        vault.decrypt(session, vault.encrypt(session, "x"))

        assert len(observed) == 4
        assert all(observed)

    def test_password_change_during_store_is_rejected(self, vault, session, memory_store, monkeypatch):
        """Test that a secret encrypted under a replaced salt is never written."""
        real_derive = vault_module.derive_key_from_password

        def derive_then_rotate(*args, **kwargs):
            key = real_derive(*args, **kwargs)
            memory_store.set(SALT_KEY, generate_salt())
            return key

        monkeypatch.setattr(vault_module, "derive_key_from_password", derive_then_rotate)

        with pytest.raises(UninitializedError):
            vault.set_secret(session, "elevenlabs", "sk-abc123")
        assert vault.has_secret("elevenlabs") is False


class TestEndToEnd:
    """Persisted store shared by two vault instances."""

    def test_store_then_reject_wrong_password(self):
        """Test the full unlock, store, read, wrong-password flow."""
        store = MemoryStore()
        first = CredentialVault(store, iterations=TEST_KDF_ITERATIONS)
        session = first.initialize("correct-password1")
        first.set_secret(session, "elevenlabs", "sk-abc123")

        assert first.get_secret(session, "elevenlabs") == "sk-abc123"

        second = CredentialVault(store, iterations=TEST_KDF_ITERATIONS)
        with pytest.raises(AuthenticationError):
            second.initialize("wrong-password")

    def test_second_instance_reads_secret(self):
        """Test that a fresh instance with the right password reads secrets."""
        store = MemoryStore()
        first = CredentialVault(store, iterations=TEST_KDF_ITERATIONS)
        first.set_secret(first.initialize(TEST_PASSWORD), "deepgram", "dg-key")

        second = CredentialVault(store, iterations=TEST_KDF_ITERATIONS)
        assert second.get_secret(second.initialize(TEST_PASSWORD), "deepgram") == "dg-key"
