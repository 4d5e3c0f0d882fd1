"""Account passwords kept in the OS keyring.

Passwords are stored by the operating system's credential manager:
- macOS: Keychain
- Windows: Windows Credential Locker
- Linux: Secret Service API / KWallet / gnome-keyring

Nothing is written to disk by this package. KeyringCredentials reads the
password only when an adapter authenticates, so a ServerConfig can be built
and passed around without the secret in memory.
"""

from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from mailbox_runtime.errors import AuthenticationFailed
from mailbox_runtime.lib.config import app_config
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.models.specification import Credentials

# ============================================================================
# Logging Configuration
# ============================================================================

logger = get_logger(__name__)


# ============================================================================
# Keyring-backed credentials
# ============================================================================


class KeyringCredentials(Credentials):
    """Credentials whose password is looked up in the keyring on access.

    Raises:
        AuthenticationFailed: On password access, when the keyring holds no
            password for the user or cannot be read
    """

    def __init__(self, user: str, service_name: Optional[str] = None) -> None:
        super().__init__(user)
        self.service_name = service_name or app_config.keyring_service

    @property
    def password(self) -> str:
        try:
            password = keyring.get_password(self.service_name, self.user)
        except KeyringError as e:
            raise AuthenticationFailed(e, message=f"Keyring lookup failed for {self.user}") from e
        if password is None:
            raise AuthenticationFailed(message=f"No password stored in keyring for {self.user}")
        return password


# ============================================================================
# CredentialStorage Class
# ============================================================================


class CredentialStorage:
    """Store, check and delete account passwords in the OS keyring.

    Attributes:
        service_name: Keyring service identifier
    """

    def __init__(self, service_name: Optional[str] = None) -> None:
        self.service_name = service_name or app_config.keyring_service
        logger.debug(f"CredentialStorage initialized: service={self.service_name}")

    def store(self, user: str, password: str) -> bool:
        """Store the password of user.

        Returns:
            True if the password was stored, False if the keyring refused it
        """
        try:
            keyring.set_password(self.service_name, user, password)
        except KeyringError as e:
            logger.error(f"Failed to store credentials for {user}: {e}")
            return False
        logger.info(f"Credentials stored successfully for {user}")
        return True

    def retrieve(self, user: str) -> Optional[KeyringCredentials]:
        """Credentials for user, or None when nothing is stored."""
        if not self.has(user):
            logger.info(f"No credentials found for {user}")
            return None
        return KeyringCredentials(user, self.service_name)

    def delete(self, user: str) -> bool:
        """Delete the password of user; False if there was none."""
        try:
            keyring.delete_password(self.service_name, user)
        except PasswordDeleteError as e:
            logger.warning(f"Failed to delete credentials for {user}: {e}")
            return False
        logger.info(f"Credentials deleted successfully for {user}")
        return True

    def has(self, user: str) -> bool:
        try:
            return keyring.get_password(self.service_name, user) is not None
        except KeyringError as e:
            logger.warning(f"Error checking credentials for {user}: {e}")
            return False
