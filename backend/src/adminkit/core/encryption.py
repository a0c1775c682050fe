"""Secrets Encryption Service.

Fernet symmetric encryption for plugin secrets stored in the database.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

from .config import get_settings_instance
from .exceptions import SecretsEncryptionError

logger = logging.getLogger(__name__)


class SecretsEncryptionService:
    """Encrypts and decrypts secret values with a configured Fernet key."""

    def __init__(self, key: str | None = None) -> None:
        key = key or get_settings_instance().secrets_encryption_key
        if not key:
            raise SecretsEncryptionError(
                "encryption key not configured, set ADMINKIT_SECRETS_ENCRYPTION_KEY"
            )

        try:
            self.fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            raise SecretsEncryptionError(f"invalid encryption key: {e}") from e

    def encrypt(self, value: str) -> str:
        """Encrypt a plaintext secret.

        Args:
            value: The plaintext secret

        Returns:
            The Fernet token as a string

        Raises:
            SecretsEncryptionError: If the value is empty

        """
        if not value:
            raise SecretsEncryptionError("cannot encrypt an empty value")
        return self.fernet.encrypt(value.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a Fernet token produced by ``encrypt``.

        Raises:
            SecretsEncryptionError: If the token is empty, tampered with or
                encrypted with another key

        """
        if not token:
            raise SecretsEncryptionError("cannot decrypt an empty value")

        try:
            return self.fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            logger.error("Failed to decrypt secret: invalid token or key")
            raise SecretsEncryptionError("invalid token or key") from e


# Global encryption service instance
_secrets_encryption_service: SecretsEncryptionService | None = None


def get_secrets_encryption_service() -> SecretsEncryptionService:
    """Get the global secrets encryption service instance.

    Raises:
        SecretsEncryptionError: If no valid key is configured

    """
    global _secrets_encryption_service  # noqa: PLW0603

    if _secrets_encryption_service is None:
        _secrets_encryption_service = SecretsEncryptionService()

    return _secrets_encryption_service
