"""Secure credential storage for ftpq.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) to store FTP passwords, so the command line
does not prompt for them on every run.
"""

from typing import Optional

import keyring
from keyring.errors import KeyringError


class CredentialManager:
    """Secure credential storage using system keyring."""

    SERVICE_NAME = "ftpq"

    def _make_key(self, host: str, port: int, username: str) -> str:
        """Key under which the password of username@host:port is stored."""
        return f"{username}@{host}:{port}"

    def save_password(self, host: str, port: int, username: str, password: str) -> bool:
        """
        Save FTP password securely.

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_key(host, port, username), password)
            return True
        except KeyringError:
            return False

    def get_password(self, host: str, port: int, username: str) -> Optional[str]:
        """
        Retrieve saved password.

        Returns:
            Password string or None if not found
        """
        try:
            return keyring.get_password(self.SERVICE_NAME, self._make_key(host, port, username))
        except KeyringError:
            return None

    def delete_password(self, host: str, port: int, username: str) -> bool:
        """
        Remove saved password.

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_key(host, port, username))
            return True
        except KeyringError:
            return False

