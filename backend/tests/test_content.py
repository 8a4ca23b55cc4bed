"""Tests for the public landing page endpoint and storage path helpers."""

import uuid

import pytest
from httpx import AsyncClient

from washedup.config import settings
from washedup.db.session import async_session_maker
from washedup.models.content import Memory, RoutineSchedule
from washedup.services.storage import memory_path_from_src, public_url


async def _seed_content():
    async with async_session_maker() as session:
        session.add_all(
            [
                Memory(id=uuid.uuid4(), src="https://cdn/m/b.png", caption="Second", sort_order=1),
                Memory(id=uuid.uuid4(), src="https://cdn/m/a.png", caption="First", sort_order=0),
                Memory(id=uuid.uuid4(), src="https://cdn/m/h.png", caption="Hidden", sort_order=2, is_active=False),
                RoutineSchedule(
                    id=uuid.uuid4(),
                    day="Saturday",
                    time="08:00",
                    location="Park gates",
                    accent_color="from-sky-500 to-indigo-500",
                    description="Long run",
                    sort_order=0,
                ),
            ]
        )
        await session.commit()


@pytest.mark.asyncio
async def test_home_lists_active_content_in_order(client: AsyncClient, clean_db):
    await _seed_content()
    resp = await client.get("/api/v1/home")
    assert resp.status_code == 200
    data = resp.json()
    assert data["session"] is None
    assert [m["caption"] for m in data["memories"]] == ["First", "Second"]
    assert [s["day"] for s in data["routine_schedules"]] == ["Saturday"]
    assert data["error_message"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code,message",
    [
        ("oauth_denied", "Authorization was denied. Please try again."),
        ("invalid_state", "Security validation failed. Please try again."),
        ("something_else", "An unknown error occurred. Please try again."),
    ],
)
async def test_home_resolves_error_code(client: AsyncClient, clean_db, code, message):
    resp = await client.get("/api/v1/home", params={"error": code})
    assert resp.json()["error_message"] == message


@pytest.mark.asyncio
async def test_home_includes_session_when_signed_in(client: AsyncClient, member: int):
    resp = await client.get("/api/v1/home")
    assert resp.json()["session"]["user_id"] == member


def test_memory_path_round_trips_public_url():
    url = public_url("abc.webp")
    assert url.startswith(settings.s3_public_base_url)
    assert memory_path_from_src(url) == "abc.webp"
    assert memory_path_from_src("https://elsewhere/photo.png") is None
