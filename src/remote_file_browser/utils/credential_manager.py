"""
Credential Manager - Secure storage for connection secrets using system keyring
"""
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
import logging

from ..constants import KEYRING_SERVICE_NAME

logger = logging.getLogger(__name__)

PASSWORD = "password"
PASSPHRASE = "passphrase"
SECRET_KINDS = (PASSWORD, PASSPHRASE)


class CredentialManager:
    """
    Manages secrets in the system's credential manager.

    - Windows: Windows Credential Manager (DPAPI encryption)
    - macOS: Keychain
    - Linux: Secret Service (freedesktop.org)

    Keys are ``ConnectionIdentity.credential_key`` values
    (``protocol-username-host-port``), one entry per secret kind.
    Keyring failures are logged and reported as a missing secret / False.
    """

    def __init__(self, service_name: str = KEYRING_SERVICE_NAME):
        self.service_name = service_name

    @staticmethod
    def _entry(identity_key: str, kind: str) -> str:
        if kind not in SECRET_KINDS:
            raise ValueError(f"Unknown secret kind: {kind}")
        return f"{identity_key}:{kind}"

    def get(self, identity_key: str, kind: str = PASSWORD) -> Optional[str]:
        """
        Retrieve a secret.

        Returns:
            The secret, or None if not stored or the keyring failed
        """
        try:
            return keyring.get_password(self.service_name, self._entry(identity_key, kind))
        except KeyringError as e:
            logger.error(f"Failed to retrieve {kind} for {identity_key}: {e}")
            return None

    def set(self, identity_key: str, secret: str, kind: str = PASSWORD) -> bool:
        """
        Store a secret.

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.service_name, self._entry(identity_key, kind), secret)
            logger.info(f"{kind.capitalize()} saved securely for {identity_key}")
            return True
        except KeyringError as e:
            logger.error(f"Failed to save {kind} for {identity_key}: {e}")
            return False

    def delete(self, identity_key: str, kind: str = PASSWORD) -> bool:
        """
        Delete one secret. Deleting a missing secret succeeds.

        Returns:
            True if deleted (or absent), False if the keyring failed
        """
        try:
            keyring.delete_password(self.service_name, self._entry(identity_key, kind))
        except PasswordDeleteError:
            pass  # Already deleted or doesn't exist
        except KeyringError as e:
            logger.error(f"Failed to delete {kind} for {identity_key}: {e}")
            return False
        return True

    def delete_credentials(self, identity_key: str) -> bool:
        """Delete every secret kind stored for a connection."""
        results = [self.delete(identity_key, kind) for kind in SECRET_KINDS]
        if all(results):
            logger.info(f"Credentials deleted for {identity_key}")
        return all(results)

    def has_credentials(self, identity_key: str) -> bool:
        return any(self.get(identity_key, kind) is not None for kind in SECRET_KINDS)
