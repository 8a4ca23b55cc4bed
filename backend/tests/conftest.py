"""Pytest configuration and shared fixtures for API tests."""

import base64
import os
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

# Set test DB before app imports so config/engine use it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_washedup.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENCRYPTION_KEY", base64.urlsafe_b64encode(b"0" * 32).decode())
os.environ.setdefault("RATE_LIMIT_DEFAULT", "10000/minute")
os.environ.setdefault("STRAVA_CLIENT_ID", "12345")
os.environ.setdefault("STRAVA_CLIENT_SECRET", "strava-secret")
os.environ.setdefault("STRAVA_REDIRECT_URI", "http://test/auth/strava/callback")

from washedup.config import settings
from washedup.core.auth import create_access_token
from washedup.db.base import Base
from washedup.db.session import async_session_maker, engine, init_db
from washedup.main import app
from washedup.models.challenge import Challenge, ChallengeStatus, ChallengeType
from washedup.models.profile import Profile, ProfileRole
from washedup.models.user import User
from washedup.services.strava_client import close_http_client, init_http_client

pytest_plugins = ["pytest_asyncio"]


@pytest_asyncio.fixture
async def ensure_db():
    """Create tables and the shared Strava HTTP client (lifespan does not run under ASGITransport)."""
    await init_db()
    init_http_client(timeout=30.0)
    yield
    await close_http_client()


async def _delete_all():
    """Delete rows child-first so tests start clean."""
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(delete(table))


@pytest_asyncio.fixture
async def clean_db(ensure_db):
    await _delete_all()
    yield


@pytest_asyncio.fixture
async def client(ensure_db):
    """Yield AsyncClient. Session cookies are set per test by the member/admin fixtures."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def create_member(
    email: str = "runner@test.com",
    role: str = ProfileRole.user.value,
    firstname: str = "Test",
    with_profile: bool = True,
) -> tuple[int, str]:
    """Create a user (and profile) via DB, committed. Returns (user_id, access_token)."""
    async with async_session_maker() as session:
        user = User(email=email, email_confirmed=True)
        session.add(user)
        await session.flush()
        if with_profile:
            session.add(Profile(id=user.id, firstname=firstname, lastname="Runner", username=email, role=role))
        await session.commit()
        return user.id, create_access_token(user.id, user.email)


@pytest_asyncio.fixture
async def member(clean_db, client):
    """Signed-in regular member; returns user_id."""
    user_id, token = await create_member()
    client.cookies.set(settings.session_cookie_name, token)
    return user_id


@pytest_asyncio.fixture
async def admin(clean_db, client):
    """Signed-in admin; returns user_id."""
    user_id, token = await create_member(email="admin@test.com", role=ProfileRole.admin.value, firstname="Admin")
    client.cookies.set(settings.session_cookie_name, token)
    return user_id


async def create_challenge(**overrides) -> Challenge:
    """Active best-effort 5k running from yesterday to next week, unless overridden."""
    now = datetime.now(timezone.utc)
    values = {
        "title": "5K Time Trial",
        "description": "Fastest 5k",
        "type": ChallengeType.best_effort.value,
        "goal_value": 5000,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=7),
        "status": ChallengeStatus.active.value,
        "is_active": True,
    }
    values.update(overrides)
    async with async_session_maker() as session:
        challenge = Challenge(**values)
        session.add(challenge)
        await session.commit()
        return challenge
