"""Tests for admin panel data and form actions (storage mocked)."""

import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from washedup.config import settings
from washedup.db.session import async_session_maker
from washedup.models.audit_log import AuditLog
from washedup.models.challenge import Challenge
from washedup.models.content import Memory, RoutineSchedule

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _schedule_form(**overrides) -> dict:
    form = {
        "id": str(uuid.uuid4()),
        "day": "Tuesday",
        "time": "06:30",
        "location": "Riverside track",
        "accentColor": "from-orange-500 to-red-500",
        "description": "Intervals, then coffee",
    }
    form.update(overrides)
    return form


def _challenge_form(**overrides) -> dict:
    form = {
        "id": str(uuid.uuid4()),
        "title": "Autumn 10K",
        "description": "Fastest 10k in October",
        "type": "best_effort",
        "goalValue": "10000",
        "startDate": "2026-10-01T00:00:00Z",
        "endDate": "2026-10-31T23:59:59Z",
        "status": "active",
    }
    form.update(overrides)
    return form


async def _memories() -> list[Memory]:
    async with async_session_maker() as session:
        return list((await session.execute(select(Memory).order_by(Memory.sort_order))).scalars().all())


async def _create_memory(client: AsyncClient, caption: str = "Finish line", memory_id: str | None = None):
    return await client.post(
        "/api/v1/admin/memories",
        data={"id": memory_id or str(uuid.uuid4()), "caption": caption},
        files={"file": ("finish.png", PNG, "image/png")},
    )


@pytest.mark.asyncio
async def test_admin_page_redirects_non_admin(client: AsyncClient, member: int):
    resp = await client.get("/api/v1/admin")
    assert resp.status_code == 302
    assert resp.headers["location"] == "/"


@pytest.mark.asyncio
async def test_admin_page_redirects_anonymous(client: AsyncClient, clean_db):
    resp = await client.get("/api/v1/admin")
    assert resp.status_code == 302


@pytest.mark.asyncio
async def test_admin_page_data(client: AsyncClient, admin: int):
    await client.post("/api/v1/admin/routine-schedules", data=_schedule_form())
    await client.post("/api/v1/admin/challenges", data=_challenge_form())

    resp = await client.get("/api/v1/admin")
    assert resp.status_code == 200
    data = resp.json()
    assert data["profile"]["id"] == admin
    assert data["memories"] == []
    assert [s["day"] for s in data["routine_schedules"]] == ["Tuesday"]
    assert data["challenges"][0]["title"] == "Autumn 10K"
    assert data["challenges"][0]["participants"] == []


@pytest.mark.asyncio
async def test_actions_require_admin(client: AsyncClient, member: int):
    for path, form in [
        ("/api/v1/admin/memories/delete", {"id": str(uuid.uuid4())}),
        ("/api/v1/admin/routine-schedules", _schedule_form()),
        ("/api/v1/admin/challenges", _challenge_form()),
    ]:
        resp = await client.post(path, data=form)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}


@pytest.mark.asyncio
async def test_create_memory_uploads_and_appends(client: AsyncClient, admin: int):
    with patch(
        "washedup.services.storage.upload_memory_image",
        new_callable=AsyncMock,
        side_effect=["first.png", "second.png"],
    ) as upload:
        first = await _create_memory(client, "First")
        second = await _create_memory(client, "  Second  ")

    assert first.json() == {"success": True}
    assert second.status_code == 200
    assert upload.await_count == 2
    memories = await _memories()
    assert [(m.caption, m.sort_order) for m in memories] == [("First", 0), ("Second", 1)]
    assert memories[0].src == f"{settings.s3_public_base_url}/{settings.s3_bucket}/memories/first.png"


@pytest.mark.asyncio
async def test_create_memory_validation(client: AsyncClient, admin: int):
    with patch("washedup.services.storage.upload_memory_image", new_callable=AsyncMock) as upload:
        bad_id = await client.post("/api/v1/admin/memories", data={"id": "nope", "caption": "x"})
        no_file = await client.post("/api/v1/admin/memories", data={"id": str(uuid.uuid4()), "caption": "x"})
        wrong_type = await client.post(
            "/api/v1/admin/memories",
            data={"id": str(uuid.uuid4()), "caption": "x"},
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        no_caption = await _create_memory(client, "   ")
        long_caption = await _create_memory(client, "x" * 501)
        with patch.object(settings, "memory_max_size_bytes", 10):
            too_big = await _create_memory(client)

    assert (bad_id.status_code, bad_id.json()["error"]) == (400, "Invalid ID.")
    assert no_file.json()["error"] == "Please select an image to upload."
    assert wrong_type.json()["error"] == "Invalid file type. Allowed: JPEG, PNG, WebP, GIF."
    assert no_caption.json()["error"] == "Caption is required."
    assert long_caption.json()["error"] == "Caption must be 500 characters or less."
    assert too_big.status_code == 413
    assert too_big.json()["error"] == "Image must be 5MB or smaller."
    upload.assert_not_called()


@pytest.mark.asyncio
async def test_create_memory_duplicate_id(client: AsyncClient, admin: int):
    memory_id = str(uuid.uuid4())
    with patch("washedup.services.storage.upload_memory_image", new_callable=AsyncMock, return_value="a.png"):
        await _create_memory(client, memory_id=memory_id)
        resp = await _create_memory(client, memory_id=memory_id)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Memory already exists."


@pytest.mark.asyncio
async def test_create_memory_removes_upload_when_insert_fails(client: AsyncClient, admin: int):
    with (
        patch("washedup.services.storage.upload_memory_image", new_callable=AsyncMock, return_value="orphan.png"),
        patch("washedup.services.storage.delete_memory_image", new_callable=AsyncMock) as remove,
        patch("washedup.api.v1.admin.log_admin_action", new_callable=AsyncMock, side_effect=SQLAlchemyError("down")),
    ):
        resp = await _create_memory(client)

    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to save memory. Please try again."
    remove.assert_awaited_once_with("orphan.png")
    assert await _memories() == []


@pytest.mark.asyncio
async def test_update_and_delete_memory(client: AsyncClient, admin: int):
    memory_id = str(uuid.uuid4())
    with patch("washedup.services.storage.upload_memory_image", new_callable=AsyncMock, return_value="m.png"):
        await _create_memory(client, memory_id=memory_id)

    bad_order = await client.post(
        "/api/v1/admin/memories/update",
        data={"id": memory_id, "caption": "Renamed", "sortOrder": "-1", "isActive": "true"},
    )
    assert bad_order.json()["error"] == "Sort order must be a non-negative number."

    resp = await client.post(
        "/api/v1/admin/memories/update",
        data={"id": memory_id, "caption": "Renamed", "sortOrder": "3", "isActive": "false"},
    )
    assert resp.status_code == 200
    memory = (await _memories())[0]
    assert (memory.caption, memory.sort_order, memory.is_active) == ("Renamed", 3, False)

    missing = await client.post("/api/v1/admin/memories/delete", data={"id": str(uuid.uuid4())})
    assert missing.status_code == 404

    with patch("washedup.services.storage.delete_memory_image", new_callable=AsyncMock) as remove:
        deleted = await client.post("/api/v1/admin/memories/delete", data={"id": memory_id})
    assert deleted.json() == {"success": True}
    remove.assert_awaited_once_with("m.png")
    assert await _memories() == []


@pytest.mark.asyncio
async def test_reorder_memories(client: AsyncClient, admin: int):
    ids = [str(uuid.uuid4()) for _ in range(3)]
    with patch("washedup.services.storage.upload_memory_image", new_callable=AsyncMock, return_value="x.png"):
        for i, memory_id in enumerate(ids):
            await _create_memory(client, caption=f"m{i}", memory_id=memory_id)

    for raw, message in [
        (None, "Ordered IDs are required."),
        ("{not json", "Invalid ordered IDs format."),
        ("[]", "Ordered IDs must be a non-empty array."),
        (json.dumps(["nope"]), "All IDs must be valid UUIDs."),
    ]:
        resp = await client.post("/api/v1/admin/memories/reorder", data={"orderedIds": raw} if raw else {})
        assert resp.status_code == 400
        assert resp.json()["error"] == message

    resp = await client.post("/api/v1/admin/memories/reorder", data={"orderedIds": json.dumps(ids[::-1])})
    assert resp.status_code == 200
    assert [m.caption for m in await _memories()] == ["m2", "m1", "m0"]


@pytest.mark.asyncio
async def test_routine_schedule_lifecycle(client: AsyncClient, admin: int):
    form = _schedule_form()
    created = await client.post("/api/v1/admin/routine-schedules", data=form)
    assert created.json() == {"success": True}

    duplicate = await client.post("/api/v1/admin/routine-schedules", data=form)
    assert duplicate.json()["error"] == "Schedule already exists."

    updated = await client.post("/api/v1/admin/routine-schedules/update", data={**form, "location": "Hill loop"})
    assert updated.status_code == 200

    toggled = await client.post("/api/v1/admin/routine-schedules/toggle", data={"id": form["id"], "isActive": "false"})
    assert toggled.status_code == 200

    async with async_session_maker() as session:
        schedule = await session.get(RoutineSchedule, uuid.UUID(form["id"]))
        assert schedule.location == "Hill loop"
        assert schedule.is_active is False
        assert schedule.sort_order == 0

    deleted = await client.post("/api/v1/admin/routine-schedules/delete", data={"id": form["id"]})
    assert deleted.status_code == 200
    gone = await client.post("/api/v1/admin/routine-schedules/toggle", data={"id": form["id"], "isActive": "true"})
    assert gone.status_code == 404
    assert gone.json()["error"] == "Schedule not found."


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "field,value,message",
    [
        ("day", "", "Day is required and must be 50 characters or less."),
        ("day", "d" * 51, "Day is required and must be 50 characters or less."),
        ("time", "t" * 21, "Time is required and must be 20 characters or less."),
        ("location", "l" * 201, "Location is required and must be 200 characters or less."),
        ("accentColor", "c" * 101, "Accent color is required and must be 100 characters or less."),
        ("description", "   ", "Description is required and must be 500 characters or less."),
    ],
)
async def test_routine_schedule_validation(client: AsyncClient, admin: int, field, value, message):
    resp = await client.post("/api/v1/admin/routine-schedules", data=_schedule_form(**{field: value}))
    assert resp.status_code == 400
    assert resp.json()["error"] == message


@pytest.mark.asyncio
async def test_create_update_delete_challenge(client: AsyncClient, admin: int):
    form = _challenge_form()
    created = await client.post("/api/v1/admin/challenges", data=form)
    assert created.json() == {"success": True}

    again = await client.post("/api/v1/admin/challenges", data=form)
    assert again.json()["error"] == "Challenge already exists."

    updated = await client.post(
        "/api/v1/admin/challenges/update",
        data={
            **form,
            "title": "Autumn 10K (segment)",
            "type": "segment_race",
            "segmentId": "229781",
            "goalValue": "",
            "endDate": "2026-11-07T23:59:59Z",
        },
    )
    assert updated.status_code == 200

    async with async_session_maker() as session:
        challenge = await session.get(Challenge, uuid.UUID(form["id"]))
        assert challenge.title == "Autumn 10K (segment)"
        assert challenge.segment_id == 229781
        # Goal left untouched when omitted on update
        assert challenge.goal_value == 10000

    deleted = await client.post("/api/v1/admin/challenges/delete", data={"id": form["id"]})
    assert deleted.status_code == 200
    missing = await client.post("/api/v1/admin/challenges/update", data=form)
    assert missing.status_code == 404

    async with async_session_maker() as session:
        actions = [a.action for a in (await session.execute(select(AuditLog).order_by(AuditLog.id))).scalars()]
        assert actions == ["create", "update", "delete"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"title": ""}, "Title is required and must be 200 characters or less."),
        ({"type": "marathon"}, "Invalid challenge type."),
        ({"status": "paused"}, "Invalid challenge status."),
        ({"type": "cumulative", "goalValue": "0"}, "Goal value is required for cumulative and best-effort challenges."),
        ({"type": "segment_race", "goalValue": ""}, "Segment ID is required for segment race challenges."),
        ({"startDate": "not-a-date"}, "Start date is required and must be valid."),
        ({"endDate": ""}, "End date is required and must be valid."),
        ({"endDate": "2026-10-01T00:00:00Z"}, "End date must be after start date."),
    ],
)
async def test_challenge_validation(client: AsyncClient, admin: int, overrides, message):
    resp = await client.post("/api/v1/admin/challenges", data=_challenge_form(**overrides))
    assert resp.status_code == 400
    assert resp.json()["error"] == message


@pytest.mark.asyncio
async def test_segment_race_with_segment_id(client: AsyncClient, admin: int):
    resp = await client.post(
        "/api/v1/admin/challenges", data=_challenge_form(type="segment_race", goalValue="", segmentId="229781")
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_update_validates_submitted_goal_not_stored_one(client: AsyncClient, admin: int):
    form = _challenge_form(type="cumulative", goalValue="50000")
    await client.post("/api/v1/admin/challenges", data=form)

    resp = await client.post("/api/v1/admin/challenges/update", data={**form, "goalValue": ""})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Goal value is required for cumulative and best-effort challenges."

    async with async_session_maker() as session:
        assert (await session.get(Challenge, uuid.UUID(form["id"]))).goal_value == 50000
