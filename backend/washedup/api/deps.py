"""FastAPI dependencies: per-request context, authenticated profile, admin gate."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from washedup.api.responses import fail
from washedup.db.session import get_db
from washedup.models.profile import Profile
from washedup.services.session_resolver import RequestContext


async def get_request_context(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> RequestContext:
    """Build the request context once and resolve the session (FastAPI caches this per request).

    A session rotated through the refresh cookie is parked on ``request.state``;
    SessionCookieMiddleware writes its cookies onto whatever response the handler returns.
    """
    ctx = RequestContext(db=session, cookies=request.cookies)
    result = await ctx.safe_get_session()
    if result.session is not None and result.session.rotated:
        request.state.rotated_session = result.session
    return ctx


Context = Annotated[RequestContext, Depends(get_request_context)]


async def get_current_profile(ctx: Context) -> Profile:
    if not ctx.auth.is_authenticated or ctx.profile is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return ctx.profile


def require_admin(ctx: RequestContext) -> JSONResponse | None:
    """Failure response for form actions when the caller is not an admin, else None."""
    if ctx.profile is None or not ctx.profile.is_admin:
        return fail(401, "Unauthorized")
    return None


def require_member(ctx: RequestContext, message: str) -> JSONResponse | None:
    if not ctx.auth.is_authenticated or ctx.profile is None:
        return fail(401, message)
    return None
