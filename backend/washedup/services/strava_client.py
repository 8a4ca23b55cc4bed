"""
Strava OAuth client: authorize URL, authorization code exchange, token refresh.
Requests go through one shared httpx.AsyncClient opened in the app lifespan.
"""
from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from washedup.config import settings
from washedup.schemas.strava import StravaTokenResponse

logger = logging.getLogger(__name__)

_http_client: httpx.AsyncClient | None = None


class StravaAPIError(Exception):
    """Token endpoint answered with a non-2xx status (or an unparseable body)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def get_http_client() -> httpx.AsyncClient:
    """Return the shared async HTTP client. Must be initialized via init_http_client() first."""
    if _http_client is None:
        raise RuntimeError("HTTP client not initialized; ensure app lifespan has run init_http_client().")
    return _http_client


def init_http_client(timeout: float = 30.0) -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=timeout)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def generate_auth_url(state: str) -> str:
    """Strava authorize URL carrying the CSRF state."""
    params = urlencode(
        {
            "client_id": settings.strava_client_id,
            "redirect_uri": settings.strava_redirect_uri,
            "response_type": "code",
            "scope": settings.strava_scope,
            "state": state,
        }
    )
    return f"{settings.strava_oauth_base}/authorize?{params}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "Unknown error"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return "Unknown error"


async def _post_token(data: dict[str, str], action: str) -> StravaTokenResponse:
    payload = {
        "client_id": settings.strava_client_id,
        "client_secret": settings.strava_client_secret,
        **data,
    }
    r = await get_http_client().post(f"{settings.strava_oauth_base}/token", data=payload)
    if r.is_error:
        message = _error_message(r)
        logger.warning("Strava token %s failed with %s: %s", action, r.status_code, message)
        raise StravaAPIError(f"Strava token {action} failed: {message}", status_code=r.status_code)
    try:
        return StravaTokenResponse.model_validate(r.json())
    except (ValueError, ValidationError) as e:
        raise StravaAPIError(f"Strava token {action} failed: malformed response") from e


async def exchange_code(code: str) -> StravaTokenResponse:
    """Exchange authorization code for tokens and the summary athlete."""
    return await _post_token({"code": code, "grant_type": "authorization_code"}, "exchange")


async def refresh_access_token(refresh_token: str) -> StravaTokenResponse:
    """Trade a refresh token for a new access/refresh pair. Strava may rotate the refresh token."""
    return await _post_token({"refresh_token": refresh_token, "grant_type": "refresh_token"}, "refresh")
