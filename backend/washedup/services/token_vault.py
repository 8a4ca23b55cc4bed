"""Strava tokens at rest: Fernet-sealed when ENCRYPTION_KEY is set, plaintext in development."""

import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from washedup.config import settings

logger = logging.getLogger(__name__)


@lru_cache
def _fernet(key: str) -> Fernet:
    return Fernet(key.encode())


def get_fernet() -> Fernet | None:
    if not settings.encryption_key:
        return None
    return _fernet(settings.encryption_key)


def seal(value: str) -> str:
    f = get_fernet()
    if f is None or not value:
        return value
    return f.encrypt(value.encode()).decode()


def unseal(stored: str) -> str | None:
    """Decrypt a stored token. None when it was sealed under a different key."""
    f = get_fernet()
    if f is None or not stored:
        return stored
    try:
        return f.decrypt(stored.encode()).decode()
    except InvalidToken:
        logger.warning("Stored Strava token could not be decrypted; ENCRYPTION_KEY may have rotated")
        return None
