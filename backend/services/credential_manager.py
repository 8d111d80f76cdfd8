"""OS keychain access for Open Finance secrets.

Only the OAuth client credentials and the token encryption key live in the
keychain; every other setting comes from the environment.  ``keyring`` is
imported on first use, so hosts without a usable backend fall back to the
environment.
"""

import logging
from types import ModuleType

logger = logging.getLogger(__name__)

SERVICE_NAME = "open-finance-sync"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "OPEN_FINANCE_CLIENT_ID",
        "OPEN_FINANCE_CLIENT_SECRET",
        "TOKEN_ENCRYPTION_KEY",
    }
)


def _keyring() -> ModuleType | None:
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def get_credential(key: str) -> str | None:
    """Keychain value for ``key``.

    Returns ``None`` for keys outside :data:`CREDENTIAL_KEYS`, for missing
    entries and when the keychain cannot be read.
    """
    backend = _keyring()
    if key not in CREDENTIAL_KEYS or backend is None:
        return None
    try:
        return backend.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("Keychain read failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store a secret in the keychain.

    Used to persist a generated ``TOKEN_ENCRYPTION_KEY`` so tokens written
    by this process stay readable after a restart.

    Returns:
        ``True`` if the keychain accepted the value.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to store %s in the keychain: not a secret", key)
        return False
    if not value or not value.strip():
        logger.warning("Refusing to store an empty value for %s", key)
        return False

    backend = _keyring()
    if backend is None:
        logger.warning("keyring is not installed; %s was not stored", key)
        return False
    try:
        backend.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Keychain rejected %s", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True
