"""Tests for the Strava OAuth client (token endpoint stubbed with respx)."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import respx

from washedup.config import settings
from washedup.services.strava_client import (
    StravaAPIError,
    exchange_code,
    generate_auth_url,
    refresh_access_token,
)

TOKEN_URL = f"{settings.strava_oauth_base}/token"


def test_generate_auth_url_carries_state_and_scope():
    url = generate_auth_url("state-123")
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert url.startswith(f"{settings.strava_oauth_base}/authorize?")
    assert query["state"] == ["state-123"]
    assert query["scope"] == ["activity:read_all,profile:read_all"]
    assert query["response_type"] == ["code"]
    assert query["client_id"] == [settings.strava_client_id]


@pytest.mark.asyncio
@respx.mock
async def test_exchange_code_returns_tokens_and_athlete(ensure_db):
    route = respx.post(TOKEN_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "token_type": "Bearer",
                "access_token": "acc",
                "refresh_token": "ref",
                "expires_at": 1_900_000_000,
                "expires_in": 21600,
                "athlete": {"id": 42, "username": "miler", "firstname": "Mi", "lastname": "Ler"},
            },
        )
    )
    tokens = await exchange_code("the-code")

    assert tokens.access_token == "acc"
    assert tokens.athlete.id == 42
    sent = parse_qs(route.calls.last.request.content.decode())
    assert sent["grant_type"] == ["authorization_code"]
    assert sent["code"] == ["the-code"]
    assert sent["client_secret"] == [settings.strava_client_secret]


@pytest.mark.asyncio
@respx.mock
async def test_exchange_code_error_carries_provider_message(ensure_db):
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={"message": "Bad Request", "errors": []}))
    with pytest.raises(StravaAPIError) as exc_info:
        await exchange_code("expired-code")
    assert str(exc_info.value) == "Strava token exchange failed: Bad Request"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@respx.mock
async def test_refresh_error_without_message(ensure_db):
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(500, text="upstream down"))
    with pytest.raises(StravaAPIError, match="Strava token refresh failed: Unknown error"):
        await refresh_access_token("r")


@pytest.mark.asyncio
@respx.mock
async def test_refresh_access_token(ensure_db):
    route = respx.post(TOKEN_URL).mock(
        return_value=httpx.Response(
            200, json={"access_token": "new", "refresh_token": "newer", "expires_at": 1_900_000_000}
        )
    )
    tokens = await refresh_access_token("old-refresh")
    assert tokens.refresh_token == "newer"
    assert tokens.athlete is None
    assert parse_qs(route.calls.last.request.content.decode())["grant_type"] == ["refresh_token"]
