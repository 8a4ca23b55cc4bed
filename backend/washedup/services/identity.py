"""
Identity provider: accounts, sessions and single-use login links.

Sessions are a short-lived JWT access token plus an opaque refresh token stored
hashed in ``user_refresh_tokens``; both travel as httpOnly cookies. Accounts for
Strava athletes are created through ``create_user`` (the administrative path, no
password) and signed in by issuing a login link and verifying it immediately.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Response
from jose import ExpiredSignatureError, JWTError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from washedup.config import settings
from washedup.core.auth import create_access_token, create_opaque_token, decode_token, hash_opaque_token
from washedup.core.time_utils import utcnow
from washedup.models.login_link import LoginLink
from washedup.models.refresh_token import RefreshToken
from washedup.models.user import User

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """Identity could not be created or a session could not be established."""


@dataclass
class IssuedSession:
    access_token: str
    refresh_token: str
    expires_at: datetime
    user_id: int
    rotated: bool = False  # True when minted from the refresh cookie during this request

    @property
    def expires_in(self) -> int:
        return max(0, int((self.expires_at - utcnow()).total_seconds()))


async def create_user(session: AsyncSession, email: str, user_metadata: dict | None = None) -> User:
    """Create a confirmed account. Raises IdentityError if the email is taken."""
    user = User(email=email.strip().lower(), email_confirmed=True, user_metadata=user_metadata)
    try:
        async with session.begin_nested():
            session.add(user)
            await session.flush()
    except IntegrityError as e:
        raise IdentityError(f"A user with email {email} already exists") from e
    return user


async def get_user_by_id(session: AsyncSession, user_id: int) -> User | None:
    r = await session.execute(select(User).where(User.id == user_id))
    return r.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    r = await session.execute(select(User).where(User.email == email.strip().lower()))
    return r.scalar_one_or_none()


async def issue_session(session: AsyncSession, user: User) -> IssuedSession:
    """Create access token, refresh token (stored hashed)."""
    expires_at = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    access = create_access_token(user.id, user.email)
    refresh_plain = create_opaque_token()
    session.add(
        RefreshToken(
            user_id=user.id,
            token_hash=hash_opaque_token(refresh_plain),
            expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
        )
    )
    await session.flush()
    return IssuedSession(access_token=access, refresh_token=refresh_plain, expires_at=expires_at, user_id=user.id)


async def refresh_session(session: AsyncSession, refresh_token: str) -> IssuedSession | None:
    """Exchange a refresh token for a new session (rotation). None when invalid or expired."""
    if not refresh_token or not refresh_token.strip():
        return None
    r = await session.execute(
        select(RefreshToken).where(
            RefreshToken.token_hash == hash_opaque_token(refresh_token.strip()),
            RefreshToken.expires_at > utcnow(),
        )
    )
    row = r.scalar_one_or_none()
    if row is None:
        return None
    user_id = row.user_id
    await session.delete(row)
    await session.flush()
    user = await get_user_by_id(session, user_id)
    if user is None:
        return None
    issued = await issue_session(session, user)
    issued.rotated = True
    return issued


async def revoke_refresh_token(session: AsyncSession, refresh_token: str | None) -> None:
    if not refresh_token:
        return
    await session.execute(delete(RefreshToken).where(RefreshToken.token_hash == hash_opaque_token(refresh_token)))


async def generate_login_link(session: AsyncSession, email: str) -> str | None:
    """Issue a single-use login token for email. Returns the plain token, None if no such user."""
    user = await get_user_by_email(session, email)
    if user is None:
        return None
    token = create_opaque_token()
    session.add(
        LoginLink(
            user_id=user.id,
            token_hash=hash_opaque_token(token),
            expires_at=utcnow() + timedelta(minutes=settings.login_link_expire_minutes),
        )
    )
    await session.flush()
    return token


async def verify_login_link(session: AsyncSession, token: str) -> IssuedSession | None:
    """Consume a login token and mint a session. None when unknown, used or expired."""
    r = await session.execute(
        select(LoginLink).where(
            LoginLink.token_hash == hash_opaque_token(token),
            LoginLink.used_at.is_(None),
            LoginLink.expires_at > utcnow(),
        )
    )
    link = r.scalar_one_or_none()
    if link is None:
        return None
    link.used_at = utcnow()
    user = await get_user_by_id(session, link.user_id)
    if user is None:
        return None
    return await issue_session(session, user)


def _claims_expiry(claims: dict) -> datetime:
    return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)


async def get_session(session: AsyncSession, cookies: Mapping[str, str]) -> IssuedSession | None:
    """Session check from request cookies.

    An expired access token is rotated through the refresh cookie; the caller is
    responsible for writing the new cookies (``IssuedSession.rotated``).
    """
    access = cookies.get(settings.session_cookie_name)
    refresh = cookies.get(settings.refresh_cookie_name) or ""
    if not access:
        return None
    try:
        claims = decode_token(access)
    except ExpiredSignatureError:
        return await refresh_session(session, refresh)
    except JWTError:
        return None
    try:
        user_id = int(claims.get("sub", ""))
    except ValueError:
        return None
    return IssuedSession(access_token=access, refresh_token=refresh, expires_at=_claims_expiry(claims), user_id=user_id)


async def get_user(session: AsyncSession, access_token: str) -> User | None:
    """Validate an access token against the user store. None when the token or user is invalid."""
    try:
        claims = decode_token(access_token)
        user_id = int(claims.get("sub", ""))
    except (JWTError, ValueError):
        return None
    return await get_user_by_id(session, user_id)


def set_session_cookies(response: Response, issued: IssuedSession) -> None:
    """Write session cookies. Raises IdentityError if the access token does not verify."""
    try:
        decode_token(issued.access_token)
    except JWTError as e:
        raise IdentityError("Refusing to set an invalid session") from e
    max_age = settings.refresh_token_expire_days * 86400
    for name, value in (
        (settings.session_cookie_name, issued.access_token),
        (settings.refresh_cookie_name, issued.refresh_token),
    ):
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/")
    response.delete_cookie(settings.refresh_cookie_name, path="/")
