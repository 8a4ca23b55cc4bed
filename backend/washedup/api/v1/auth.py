"""Auth: Strava OAuth login/callback (shadow accounts), logout, current session."""

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from washedup.api.deps import Context
from washedup.config import settings
from washedup.db.session import get_db
from washedup.schemas.profile import LayoutData, ProfileOut, SessionOut, UserOut
from washedup.services import identity
from washedup.services.shadow_accounts import find_or_create_shadow_user
from washedup.services.strava_client import exchange_code, generate_auth_url

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class CallbackFailure(Exception):
    """Abort the OAuth callback with a user-facing error code."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def _redirect(location: str, clear_state: bool = False) -> RedirectResponse:
    response = RedirectResponse(location, status_code=302)
    if clear_state:
        response.delete_cookie(settings.oauth_state_cookie_name, path="/")
    return response


@router.get("/strava/login", summary="Start Strava OAuth")
async def strava_login() -> RedirectResponse:
    """Set a short-lived CSRF state cookie and redirect to Strava's authorize page."""
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(generate_auth_url(state), status_code=302)
    response.set_cookie(
        settings.oauth_state_cookie_name,
        state,
        max_age=settings.oauth_state_max_age_seconds,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return response


async def _sign_in_athlete(session: AsyncSession, code: str) -> identity.IssuedSession:
    tokens = await exchange_code(code)
    if tokens.athlete is None:
        raise CallbackFailure("token_extraction_failed")
    user_id = await find_or_create_shadow_user(session, tokens.athlete, tokens)

    user = await identity.get_user_by_id(session, user_id)
    if user is None or not user.email:
        logger.error("User %s not found after Strava sign-in", user_id)
        raise CallbackFailure("user_not_found")

    link_token = await identity.generate_login_link(session, user.email)
    if not link_token:
        logger.error("Failed to generate login link for user %s", user_id)
        raise CallbackFailure("session_failed")

    issued = await identity.verify_login_link(session, link_token)
    if issued is None:
        logger.error("Failed to verify login link for user %s", user_id)
        raise CallbackFailure("session_failed")
    return issued


@router.get("/strava/callback", summary="Strava OAuth callback")
async def strava_callback(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    """Exchange code, provision the shadow account, mint a session. Failures redirect to /?error=<code>."""
    if error:
        logger.warning("Strava OAuth error: %s", error)
        return _redirect("/?error=oauth_denied")

    stored_state = request.cookies.get(settings.oauth_state_cookie_name)
    if not stored_state or stored_state != state:
        logger.warning("CSRF state mismatch on Strava callback")
        return _redirect("/?error=invalid_state")

    if not code:
        return _redirect("/?error=missing_code", clear_state=True)

    try:
        issued = await _sign_in_athlete(session, code)
        response = _redirect("/", clear_state=True)
        try:
            identity.set_session_cookies(response, issued)
        except identity.IdentityError as e:
            logger.error("Failed to set session: %s", e)
            raise CallbackFailure("session_set_failed") from e
        await session.commit()
        return response
    except CallbackFailure as e:
        await session.rollback()
        return _redirect(f"/?error={e.code}", clear_state=True)
    except Exception as e:
        logger.exception("OAuth callback error: %s", e)
        await session.rollback()
        return _redirect("/?error=unknown", clear_state=True)


@router.post("/logout", summary="Sign out")
async def logout(request: Request, ctx: Context) -> JSONResponse:
    await identity.revoke_refresh_token(ctx.db, ctx.cookies.get(settings.refresh_cookie_name))
    if ctx.auth.session is not None and ctx.auth.session.rotated:
        await identity.revoke_refresh_token(ctx.db, ctx.auth.session.refresh_token)
    request.state.rotated_session = None
    response = JSONResponse({"success": True})
    identity.clear_session_cookies(response)
    return response


@router.get("/session", response_model=LayoutData, summary="Current session, user and profile")
async def current_session(ctx: Context) -> LayoutData:
    auth = ctx.auth
    if not auth.is_authenticated:
        return LayoutData(session=None, user=None, profile=None)
    return LayoutData(
        session=SessionOut(
            user_id=auth.session.user_id,
            expires_at=auth.session.expires_at,
            expires_in=auth.session.expires_in,
        ),
        user=UserOut.model_validate(auth.user),
        profile=ProfileOut.model_validate(ctx.profile) if ctx.profile else None,
    )
