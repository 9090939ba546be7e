"""
Token storage for the Zen session client.

This module provides the durable key-value stores backing the bearer token:
the system keyring when available, an encrypted file as fallback, and an
in-memory store for tests and throwaway sessions.
"""

import os
import json
import logging
import base64
from typing import Optional, Dict
from pathlib import Path

import keyring
from keyring.errors import PasswordDeleteError
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from zen_shared.exceptions import TokenStorageError, ConfigurationError
from zen_shared.interfaces import ITokenStore

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "zen-client"
STORAGE_BACKENDS = ("auto", "keyring", "file", "memory")


def default_storage_dir() -> Path:
    """Directory for the encrypted token file and its key."""
    xdg_config = os.environ.get('XDG_CONFIG_HOME')
    if xdg_config:
        return Path(xdg_config) / 'zen'
    return Path.home() / '.zen'


class MemoryTokenStore(ITokenStore):
    """Process-local store; nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SecureTokenStorage(ITokenStore):
    """
    Secure storage for authentication tokens.

    Uses the system keyring when available, falls back to an encrypted file.
    All failures are raised as TokenStorageError.
    """

    def __init__(
        self,
        service_name: str = DEFAULT_SERVICE_NAME,
        storage_dir: Optional[Path] = None,
        use_keyring: Optional[bool] = None,
        passphrase: Optional[str] = None
    ):
        self.service_name = service_name
        self.storage_dir = Path(storage_dir).expanduser() if storage_dir else default_storage_dir()
        self.storage_path = self.storage_dir / 'auth_tokens.enc'
        self.key_path = self.storage_dir / 'storage.key'
        self._passphrase = passphrase

        if use_keyring is None:
            self.keyring_available = self._check_keyring_availability()
        else:
            self.keyring_available = use_keyring

        self._encryption_key: Optional[bytes] = None

        logger.info(f"Token storage initialized (keyring: {self.keyring_available})")

    def _check_keyring_availability(self) -> bool:
        """Check if system keyring is available."""
        try:
            test_key = f"{self.service_name}_test"
            keyring.set_password(self.service_name, test_key, "test")
            result = keyring.get_password(self.service_name, test_key)
            keyring.delete_password(self.service_name, test_key)
            return result == "test"
        except Exception as e:
            logger.debug(f"Keyring not available: {e}")
            return False

    # Keyring backend

    def _get_keyring(self, key: str) -> Optional[str]:
        return keyring.get_password(self.service_name, key)

    def _set_keyring(self, key: str, value: str) -> None:
        keyring.set_password(self.service_name, key, value)

    def _remove_keyring(self, key: str) -> None:
        try:
            keyring.delete_password(self.service_name, key)
        except PasswordDeleteError:
            pass

    # Encrypted file backend

    def _get_encryption_key(self) -> bytes:
        """Get or create the encryption key for file storage."""
        if self._encryption_key:
            return self._encryption_key

        self.storage_dir.mkdir(parents=True, exist_ok=True)

        if self._passphrase:
            salt_path = self.storage_dir / 'storage.salt'
            if salt_path.exists():
                salt = salt_path.read_bytes()
            else:
                salt = os.urandom(16)
                salt_path.write_bytes(salt)
                os.chmod(salt_path, 0o600)

            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt,
                iterations=100000,
            )
            key = base64.urlsafe_b64encode(kdf.derive(self._passphrase.encode()))
        elif self.key_path.exists():
            key = self.key_path.read_bytes().strip()
        else:
            key = Fernet.generate_key()
            self.key_path.write_bytes(key)
            os.chmod(self.key_path, 0o600)

        self._encryption_key = key
        return key

    def _read_file(self) -> Dict[str, str]:
        if not self.storage_path.exists():
            return {}
        fernet = Fernet(self._get_encryption_key())
        decrypted = fernet.decrypt(self.storage_path.read_bytes())
        return json.loads(decrypted.decode())

    def _read_file_for_update(self) -> Dict[str, str]:
        """Existing entries, or nothing if the file can no longer be read."""
        try:
            return self._read_file()
        except (InvalidToken, ValueError) as e:
            logger.warning(f"Failed to load existing tokens, overwriting {self.storage_path}: {e}")
            return {}

    def _write_file(self, data: Dict[str, str]) -> None:
        if not data:
            if self.storage_path.exists():
                self.storage_path.unlink()
            return

        fernet = Fernet(self._get_encryption_key())
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.storage_path.write_bytes(fernet.encrypt(json.dumps(data).encode()))
        os.chmod(self.storage_path, 0o600)

    # ITokenStore

    def get(self, key: str) -> Optional[str]:
        try:
            if self.keyring_available:
                return self._get_keyring(key)
            return self._read_file().get(key)
        except InvalidToken as e:
            raise TokenStorageError(
                f"Token file {self.storage_path} cannot be decrypted", cause=e
            )
        except Exception as e:
            raise TokenStorageError(f"Failed to read {key}: {e}", cause=e)

    def set(self, key: str, value: str) -> None:
        try:
            if self.keyring_available:
                self._set_keyring(key, value)
            else:
                data = self._read_file_for_update()
                data[key] = value
                self._write_file(data)
            logger.debug(f"Stored {key} securely")
        except Exception as e:
            logger.error(f"Failed to store {key}: {e}")
            raise TokenStorageError(f"Failed to store {key}: {e}", cause=e)

    def remove(self, key: str) -> None:
        try:
            if self.keyring_available:
                self._remove_keyring(key)
            else:
                data = self._read_file_for_update()
                data.pop(key, None)
                self._write_file(data)
            logger.debug(f"Removed {key} from storage")
        except Exception as e:
            logger.error(f"Failed to remove {key}: {e}")
            raise TokenStorageError(f"Failed to remove {key}: {e}", cause=e)


def create_token_store(
    backend: str = "auto",
    storage_dir: Optional[str] = None,
    service_name: str = DEFAULT_SERVICE_NAME,
    passphrase: Optional[str] = None
) -> ITokenStore:
    """
    Create the token store for a storage backend name.

    Args:
        backend: One of ``auto``, ``keyring``, ``file``, ``memory``
        storage_dir: Directory for the encrypted file backend
        service_name: Keyring service name
        passphrase: Optional passphrase the file encryption key is derived from

    Returns:
        Token store instance
    """
    backend = (backend or "auto").lower()
    directory = Path(storage_dir).expanduser() if storage_dir else None

    if backend == "memory":
        return MemoryTokenStore()
    if backend == "auto":
        return SecureTokenStorage(service_name, directory, passphrase=passphrase)
    if backend == "keyring":
        return SecureTokenStorage(service_name, directory, use_keyring=True)
    if backend == "file":
        return SecureTokenStorage(service_name, directory, use_keyring=False, passphrase=passphrase)

    raise ConfigurationError(
        f"Unknown token storage backend '{backend}'; expected one of {', '.join(STORAGE_BACKENDS)}",
        config_key='auth.storage_backend'
    )
