"""JWT creation/verification and hashing of opaque tokens (refresh tokens, login links)."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from washedup.config import settings


def create_access_token(user_id: int, email: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {"sub": str(user_id), "email": email, "exp": expire}
    result = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return result if isinstance(result, str) else result.decode("utf-8")


def decode_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry. Raises jose.JWTError (ExpiredSignatureError on expiry)."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def create_opaque_token() -> str:
    """Generate a new refresh or login-link token (plain string; caller must hash and store)."""
    return secrets.token_urlsafe(32)


def hash_opaque_token(token: str) -> str:
    """SHA256 hash of an opaque token for storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
