"""Symmetric encryption of OAuth tokens at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from ``cryptography``.  The key
comes from ``TOKEN_ENCRYPTION_KEY`` (environment or keychain); on first
run a key is generated and stored in the keychain.
"""

import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from config import settings
from services.credential_manager import set_credential

logger = logging.getLogger(__name__)


class TokenDecryptionError(ValueError):
    """A stored token could not be decrypted with the configured key."""


class TokenCipher:
    """Encrypts and decrypts token strings with a Fernet key."""

    def __init__(self, key: str | bytes):
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, token: str | None) -> str | None:
        if token is None:
            return None
        return self._fernet.encrypt(token.encode()).decode()

    def decrypt(self, encrypted: str | None) -> str | None:
        if encrypted is None:
            return None
        try:
            return self._fernet.decrypt(encrypted.encode()).decode()
        except InvalidToken as exc:
            raise TokenDecryptionError(
                "Stored token cannot be decrypted; TOKEN_ENCRYPTION_KEY may have changed"
            ) from exc


def _resolve_key() -> str:
    """Return the configured key, generating and persisting one if absent."""
    if settings.TOKEN_ENCRYPTION_KEY:
        return settings.TOKEN_ENCRYPTION_KEY

    key = TokenCipher.generate_key()
    if set_credential("TOKEN_ENCRYPTION_KEY", key):
        logger.info("Generated new token encryption key and stored it in the keychain")
    else:
        logger.warning(
            "Could not store the generated token encryption key; tokens saved "
            "in this process will be unreadable after restart. Set TOKEN_ENCRYPTION_KEY."
        )
    return key


@lru_cache
def get_token_cipher() -> TokenCipher:
    """Process-wide cipher built from the configured key (cached)."""
    return TokenCipher(_resolve_key())
