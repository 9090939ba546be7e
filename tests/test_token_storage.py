"""
Tests for token storage backends.
"""

import os
import stat
from unittest.mock import patch

import pytest
from keyring.errors import PasswordDeleteError

from zen_shared.exceptions import TokenStorageError, ConfigurationError
from zen_client.auth.token_storage import (
    MemoryTokenStore, SecureTokenStorage, create_token_store, default_storage_dir
)


class TestMemoryTokenStore:
    """Test the in-memory store."""

    def test_get_set_remove(self):
        store = MemoryTokenStore()

        assert store.get("auth_token") is None
        store.set("auth_token", "abc123")
        assert store.get("auth_token") == "abc123"
        store.remove("auth_token")
        assert store.get("auth_token") is None

    def test_remove_missing_key(self):
        MemoryTokenStore().remove("auth_token")

    def test_initial_values_are_copied(self):
        initial = {"auth_token": "abc123"}
        store = MemoryTokenStore(initial)
        store.remove("auth_token")

        assert initial == {"auth_token": "abc123"}


class TestEncryptedFileStorage:
    """Test the encrypted file backend."""

    def test_round_trip_across_instances(self, tmp_path):
        SecureTokenStorage(storage_dir=tmp_path, use_keyring=False).set("auth_token", "abc123")

        reopened = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False)
        assert reopened.get("auth_token") == "abc123"

    def test_file_is_encrypted_and_private(self, tmp_path):
        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False)
        storage.set("auth_token", "abc123")

        assert b"abc123" not in storage.storage_path.read_bytes()
        assert stat.S_IMODE(os.stat(storage.storage_path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(storage.key_path).st_mode) == 0o600

    def test_remove_deletes_empty_file(self, tmp_path):
        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False)
        storage.set("auth_token", "abc123")
        storage.remove("auth_token")

        assert storage.get("auth_token") is None
        assert not storage.storage_path.exists()

    def test_remove_missing_key(self, tmp_path):
        SecureTokenStorage(storage_dir=tmp_path, use_keyring=False).remove("auth_token")

    def test_passphrase_derived_key(self, tmp_path):
        SecureTokenStorage(storage_dir=tmp_path, use_keyring=False, passphrase="s3cret").set("auth_token", "abc123")

        assert not (tmp_path / 'storage.key').exists()
        assert SecureTokenStorage(
            storage_dir=tmp_path, use_keyring=False, passphrase="s3cret"
        ).get("auth_token") == "abc123"

    def test_wrong_passphrase(self, tmp_path):
        SecureTokenStorage(storage_dir=tmp_path, use_keyring=False, passphrase="s3cret").set("auth_token", "abc123")

        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False, passphrase="guess")
        with pytest.raises(TokenStorageError) as exc_info:
            storage.get("auth_token")

        assert "cannot be decrypted" in exc_info.value.message

    def test_corrupted_file(self, tmp_path):
        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False)
        storage.set("auth_token", "abc123")
        storage.storage_path.write_bytes(b"garbage")

        with pytest.raises(TokenStorageError):
            storage.get("auth_token")

    def test_set_overwrites_undecryptable_file(self, tmp_path):
        SecureTokenStorage(storage_dir=tmp_path, use_keyring=False, passphrase="old").set("auth_token", "stale")

        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False, passphrase="new")
        storage.set("auth_token", "fresh")

        assert storage.get("auth_token") == "fresh"

    def test_remove_from_corrupted_file(self, tmp_path):
        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=False)
        storage.set("auth_token", "abc123")
        storage.storage_path.write_bytes(b"garbage")

        storage.remove("auth_token")

        assert not storage.storage_path.exists()
        assert storage.get("auth_token") is None

        storage.set("auth_token", "fresh")
        assert storage.get("auth_token") == "fresh"

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / 'blocker'
        blocker.write_text("not a directory")

        storage = SecureTokenStorage(storage_dir=blocker / 'zen', use_keyring=False)
        with pytest.raises(TokenStorageError):
            storage.set("auth_token", "abc123")


class TestKeyringStorage:
    """Test the keyring backend with the keyring module mocked."""

    @patch('zen_client.auth.token_storage.keyring')
    def test_uses_keyring(self, mock_keyring, tmp_path):
        mock_keyring.get_password.return_value = "abc123"
        storage = SecureTokenStorage(storage_dir=tmp_path, use_keyring=True)

        storage.set("auth_token", "abc123")
        assert storage.get("auth_token") == "abc123"

        mock_keyring.set_password.assert_called_once_with("zen-client", "auth_token", "abc123")
        assert not storage.storage_path.exists()

    @patch('zen_client.auth.token_storage.keyring')
    def test_remove_missing_password(self, mock_keyring, tmp_path):
        mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")

        SecureTokenStorage(storage_dir=tmp_path, use_keyring=True).remove("auth_token")

    @patch('zen_client.auth.token_storage.keyring')
    def test_keyring_failure(self, mock_keyring, tmp_path):
        mock_keyring.get_password.side_effect = RuntimeError("locked")

        with pytest.raises(TokenStorageError):
            SecureTokenStorage(storage_dir=tmp_path, use_keyring=True).get("auth_token")

    @patch('zen_client.auth.token_storage.keyring')
    def test_availability_check(self, mock_keyring, tmp_path):
        mock_keyring.get_password.return_value = "test"
        assert SecureTokenStorage(storage_dir=tmp_path).keyring_available

        mock_keyring.set_password.side_effect = RuntimeError("no backend")
        assert not SecureTokenStorage(storage_dir=tmp_path).keyring_available


class TestCreateTokenStore:
    """Test backend selection."""

    def test_memory(self):
        assert isinstance(create_token_store("memory"), MemoryTokenStore)

    def test_file(self, tmp_path):
        store = create_token_store("file", str(tmp_path))

        assert isinstance(store, SecureTokenStorage)
        assert not store.keyring_available
        assert store.storage_dir == tmp_path

    @patch('zen_client.auth.token_storage.keyring')
    def test_keyring(self, mock_keyring, tmp_path):
        store = create_token_store("KEYRING", str(tmp_path))

        assert store.keyring_available
        mock_keyring.set_password.assert_not_called()

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError) as exc_info:
            create_token_store("floppy")

        assert exc_info.value.context['config_key'] == 'auth.storage_backend'

    def test_default_storage_dir_honours_xdg(self, monkeypatch, tmp_path):
        monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path))
        assert default_storage_dir() == tmp_path / 'zen'

        monkeypatch.delenv('XDG_CONFIG_HOME')
        assert default_storage_dir().name == '.zen'
