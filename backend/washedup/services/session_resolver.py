"""
Per-request session resolution with lazy Strava token refresh.

Every request builds one ``RequestContext`` and resolves it: validate the session
cookie, validate the user, hydrate ``ctx.profile`` and refresh the caller's
Strava tokens when they expire within the refresh threshold. Only the first two
steps decide whether the caller is authenticated; profile hydration and token
refresh failures are logged and otherwise ignored.

There is no locking around the refresh. Two concurrent requests may both refresh
the same connection; the last write wins and the next cycle heals any stale copy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import httpx
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from washedup.config import settings
from washedup.core.time_utils import ensure_utc, from_epoch_seconds, utcnow
from washedup.models.profile import Profile
from washedup.models.strava_connection import StravaConnection
from washedup.models.user import User
from washedup.services import strava_client
from washedup.services.identity import IssuedSession, get_session, get_user
from washedup.services.shadow_accounts import get_strava_connection, get_user_profile
from washedup.services.token_vault import seal, unseal

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    session: IssuedSession | None = None
    user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.user is not None


@dataclass
class TokenRefreshResult:
    attempted: bool = False
    refreshed: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RequestContext:
    db: AsyncSession
    cookies: Mapping[str, str]
    profile: Profile | None = None
    auth: SessionResult = field(default_factory=SessionResult)
    clock: Callable[[], datetime] = field(default=utcnow)

    async def safe_get_session(self) -> SessionResult:
        self.auth = await resolve_session(self)
        return self.auth


def needs_refresh(expires_at: datetime, now: datetime, threshold_seconds: int | None = None) -> bool:
    """True when the token is expired or expires within the threshold (default 5 minutes)."""
    if threshold_seconds is None:
        threshold_seconds = settings.strava_token_refresh_threshold_seconds
    return ensure_utc(expires_at) <= now + timedelta(seconds=threshold_seconds)


async def refresh_connection_if_expiring(
    db: AsyncSession,
    connection: StravaConnection,
    now: datetime,
) -> TokenRefreshResult:
    """Refresh and persist Strava tokens when close to expiry. Never raises; inspect the result."""
    user_id = connection.user_id
    if not needs_refresh(connection.expires_at, now):
        return TokenRefreshResult()

    refresh_token = unseal(connection.refresh_token)
    if not refresh_token:
        return TokenRefreshResult(attempted=True, error="Stored refresh token is unreadable")

    try:
        tokens = await strava_client.refresh_access_token(refresh_token)
    except (strava_client.StravaAPIError, httpx.HTTPError) as e:
        return TokenRefreshResult(attempted=True, error=str(e) or type(e).__name__)

    try:
        # A failed store rolls back its savepoint only, keeping a session rotated earlier in this request
        async with db.begin_nested():
            await db.execute(
                update(StravaConnection)
                .where(StravaConnection.user_id == user_id)
                .values(
                    access_token=seal(tokens.access_token),
                    refresh_token=seal(tokens.refresh_token),
                    expires_at=from_epoch_seconds(tokens.expires_at),
                    updated_at=utcnow(),
                )
            )
    except SQLAlchemyError as e:
        return TokenRefreshResult(attempted=True, error=f"Failed to store refreshed tokens: {e}")

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        return TokenRefreshResult(attempted=True, error=f"Failed to commit refreshed tokens: {e}")

    logger.debug("Refreshed Strava tokens for user %s", user_id)
    return TokenRefreshResult(attempted=True, refreshed=True)


async def resolve_session(ctx: RequestContext) -> SessionResult:
    session = await get_session(ctx.db, ctx.cookies)
    if session is None:
        ctx.profile = None
        return SessionResult()

    user = await get_user(ctx.db, session.access_token)
    if user is None:
        ctx.profile = None
        return SessionResult()

    user_id = user.id
    try:
        async with ctx.db.begin_nested():
            ctx.profile = await get_user_profile(ctx.db, user_id)
    except SQLAlchemyError:
        logger.exception("Error loading profile for user %s", user_id)
        ctx.profile = None

    try:
        async with ctx.db.begin_nested():
            connection = await get_strava_connection(ctx.db, user_id)
    except SQLAlchemyError:
        logger.exception("Error checking Strava connection for user %s", user_id)
        connection = None

    if connection is not None:
        result = await refresh_connection_if_expiring(ctx.db, connection, ctx.clock())
        if not result.ok:
            logger.warning("Failed to refresh Strava token for user %s: %s", user_id, result.error)

    return SessionResult(session=session, user=user)
