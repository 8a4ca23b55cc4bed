"""
Shadow accounts: Strava athletes mapped to internal users without registration.

The Strava connection row is the authoritative link. The profile insert on first
login is best-effort (logged on failure); the connection insert that follows
fails loudly if the profile is genuinely missing.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from washedup.config import settings
from washedup.core.time_utils import from_epoch_seconds, utcnow
from washedup.models.profile import Profile
from washedup.models.strava_connection import StravaConnection
from washedup.schemas.strava import StravaAthlete, StravaTokenResponse
from washedup.services.identity import IdentityError, create_user
from washedup.services.token_vault import seal

logger = logging.getLogger(__name__)


class ShadowUserError(Exception):
    """The identity for a new Strava athlete could not be created."""


def shadow_email(athlete_id: int) -> str:
    return f"{athlete_id}@{settings.shadow_email_domain}"


def _display_fields(athlete: StravaAthlete) -> dict:
    return {
        "firstname": athlete.firstname or "",
        "lastname": athlete.lastname or "",
        "username": athlete.username or "",
    }


async def get_strava_connection(session: AsyncSession, user_id: int) -> StravaConnection | None:
    r = await session.execute(select(StravaConnection).where(StravaConnection.user_id == user_id))
    return r.scalar_one_or_none()


async def get_user_profile(session: AsyncSession, user_id: int) -> Profile | None:
    r = await session.execute(select(Profile).where(Profile.id == user_id))
    return r.scalar_one_or_none()


async def update_user_profile(session: AsyncSession, user_id: int, athlete: StravaAthlete) -> None:
    """Overwrite profile display fields with the latest Strava data."""
    await session.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(**_display_fields(athlete), strava_athlete_id=athlete.id, updated_at=utcnow())
    )


async def find_or_create_shadow_user(
    session: AsyncSession,
    athlete: StravaAthlete,
    tokens: StravaTokenResponse,
) -> int:
    """Return the internal user id for a Strava athlete, creating the account on first sight."""
    r = await session.execute(select(StravaConnection).where(StravaConnection.strava_athlete_id == athlete.id))
    existing = r.scalar_one_or_none()
    expires_at = from_epoch_seconds(tokens.expires_at)

    if existing is not None:
        user_id = existing.user_id
        existing.access_token = seal(tokens.access_token)
        existing.refresh_token = seal(tokens.refresh_token)
        existing.expires_at = expires_at
        existing.scope = settings.strava_scope
        existing.updated_at = utcnow()
        await session.flush()
        await update_user_profile(session, user_id, athlete)
        logger.info("Strava athlete %s signed in as user %s", athlete.id, user_id)
        return user_id

    try:
        user = await create_user(
            session,
            shadow_email(athlete.id),
            user_metadata={
                "strava_athlete_id": athlete.id,
                "firstname": athlete.firstname,
                "lastname": athlete.lastname,
                "username": athlete.username,
            },
        )
    except IdentityError as e:
        raise ShadowUserError(f"Failed to create shadow user: {e}") from e

    try:
        async with session.begin_nested():
            session.add(Profile(id=user.id, strava_athlete_id=athlete.id, **_display_fields(athlete)))
    except SQLAlchemyError as e:
        logger.warning("Profile creation warning for user %s: %s", user.id, e)

    session.add(
        StravaConnection(
            user_id=user.id,
            strava_athlete_id=athlete.id,
            access_token=seal(tokens.access_token),
            refresh_token=seal(tokens.refresh_token),
            expires_at=expires_at,
            scope=settings.strava_scope,
        )
    )
    await session.flush()
    logger.info("Created shadow user %s for Strava athlete %s", user.id, athlete.id)
    return user.id
