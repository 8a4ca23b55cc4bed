"""Tests for dashboard endpoints: listing, joining, leaving and recording contributions."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import create_challenge, create_member
from washedup.config import settings
from washedup.db.session import async_session_maker
from washedup.models.audit_log import AuditLog
from washedup.models.challenge import ChallengeParticipant, ChallengeStatus, ChallengeType, ParticipantStatus
from washedup.services.challenges import join_challenge


async def _participants(challenge_id) -> list[ChallengeParticipant]:
    async with async_session_maker() as session:
        r = await session.execute(select(ChallengeParticipant).where(ChallengeParticipant.challenge_id == challenge_id))
        return list(r.scalars().all())


@pytest.mark.asyncio
async def test_dashboard_requires_login(client: AsyncClient, clean_db):
    resp = await client.get("/api/v1/dashboard")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_dashboard_lists_active_challenges(client: AsyncClient, member: int):
    challenge = await create_challenge()
    await create_challenge(title="Archived", is_active=False)
    other_id, _ = await create_member(email="other@test.com")
    async with async_session_maker() as session:
        await join_challenge(session, challenge.id, other_id)
        await session.commit()

    resp = await client.get("/api/v1/dashboard")
    assert resp.status_code == 200
    data = resp.json()
    assert data["profile"]["id"] == member
    assert [c["challenge"]["title"] for c in data["challenges"]] == ["5K Time Trial"]
    entry = data["challenges"][0]
    assert entry["is_participating"] is False
    assert entry["joinable"] is True
    assert len(entry["time_left"]) == 8
    assert len(entry["leaderboard"]) == 1
    assert entry["leaderboard"][0]["rank"] is None
    assert entry["stats"] == {"total_runners": 1, "finishers": 0, "active_runners": 0, "total_distance_km": "0.0"}


@pytest.mark.asyncio
async def test_join_requires_login(client: AsyncClient, clean_db):
    challenge = await create_challenge()
    resp = await client.post("/api/v1/dashboard/join", data={"challengeId": str(challenge.id)})
    assert resp.status_code == 401
    assert resp.json() == {"error": "You must be logged in to join a challenge"}


@pytest.mark.asyncio
async def test_join_requires_challenge_id(client: AsyncClient, member: int):
    resp = await client.post("/api/v1/dashboard/join", data={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Challenge ID is required"


@pytest.mark.asyncio
async def test_join_unknown_challenge(client: AsyncClient, member: int):
    resp = await client.post(
        "/api/v1/dashboard/join", data={"challengeId": "00000000-0000-4000-8000-000000000000"}
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Challenge not found"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"status": ChallengeStatus.upcoming.value},
        {
            "start_date": datetime.now(timezone.utc) - timedelta(days=10),
            "end_date": datetime.now(timezone.utc) - timedelta(days=1),
        },
    ],
)
async def test_join_not_joinable(client: AsyncClient, member: int, overrides):
    challenge = await create_challenge(**overrides)
    resp = await client.post("/api/v1/dashboard/join", data={"challengeId": str(challenge.id)})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Challenge is not joinable. It may have ended or is not active."
    assert await _participants(challenge.id) == []


@pytest.mark.asyncio
async def test_join_then_join_again(client: AsyncClient, member: int):
    challenge = await create_challenge()
    resp = await client.post("/api/v1/dashboard/join", data={"challengeId": str(challenge.id)})
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    participants = await _participants(challenge.id)
    assert len(participants) == 1
    assert participants[0].profile_id == member
    assert participants[0].status == ParticipantStatus.registered.value

    again = await client.post("/api/v1/dashboard/join", data={"challengeId": str(challenge.id)})
    assert again.status_code == 400
    assert again.json()["error"] == "You are already participating in this challenge"
    assert len(await _participants(challenge.id)) == 1


@pytest.mark.asyncio
async def test_leave_challenge(client: AsyncClient, member: int):
    challenge = await create_challenge()
    not_joined = await client.post("/api/v1/dashboard/leave", data={"challengeId": str(challenge.id)})
    assert not_joined.status_code == 404

    await client.post("/api/v1/dashboard/join", data={"challengeId": str(challenge.id)})
    resp = await client.post("/api/v1/dashboard/leave", data={"challengeId": str(challenge.id)})
    assert resp.status_code == 200
    assert await _participants(challenge.id) == []


@pytest.mark.asyncio
async def test_record_contribution_requires_admin(client: AsyncClient, member: int):
    challenge = await create_challenge()
    async with async_session_maker() as session:
        participant = await join_challenge(session, challenge.id, member)
        await session.commit()

    resp = await client.post(
        "/api/v1/dashboard/contributions",
        json={
            "participant_id": str(participant.id),
            "external_activity_id": 1,
            "value": 1300,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}


@pytest.mark.asyncio
async def test_admin_records_contribution_once(client: AsyncClient, admin: int):
    challenge = await create_challenge(type=ChallengeType.cumulative.value, goal_value=10_000)
    runner_id, _ = await create_member()
    async with async_session_maker() as session:
        participant = await join_challenge(session, challenge.id, runner_id)
        await session.commit()

    body = {
        "participant_id": str(participant.id),
        "external_activity_id": 98765,
        "value": 6000,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "activity_name": "Long Run",
    }
    resp = await client.post("/api/v1/dashboard/contributions", json=body)
    assert resp.status_code == 200
    assert resp.json()["status"] == ParticipantStatus.in_progress.value
    assert resp.json()["result_display"] == "6.0 km"

    dup = await client.post("/api/v1/dashboard/contributions", json={**body, "value": 7000})
    assert dup.status_code == 400
    assert "already counted" in dup.json()["error"]

    second = await client.post(
        "/api/v1/dashboard/contributions", json={**body, "external_activity_id": 98766, "value": 4500}
    )
    assert second.json()["status"] == ParticipantStatus.completed.value

    async with async_session_maker() as session:
        actions = (await session.execute(select(AuditLog).where(AuditLog.resource == "contribution"))).scalars().all()
        assert len(actions) == 2
        assert all(a.user_id == admin for a in actions)


@pytest.mark.asyncio
async def test_admin_invalidates_contribution(client: AsyncClient, admin: int):
    challenge = await create_challenge()
    runner_id, _ = await create_member()
    async with async_session_maker() as session:
        participant = await join_challenge(session, challenge.id, runner_id)
        await session.commit()

    created = await client.post(
        "/api/v1/dashboard/contributions",
        json={
            "participant_id": str(participant.id),
            "external_activity_id": 5,
            "value": 1250,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    contribution_id = created.json()["contribution_id"]

    resp = await client.post(f"/api/v1/dashboard/contributions/{contribution_id}/validity", json={"is_valid": False})
    assert resp.status_code == 200
    assert resp.json()["status"] == ParticipantStatus.registered.value
    assert resp.json()["result_display"] is None


@pytest.mark.asyncio
async def test_dashboard_ranks_finishers(client: AsyncClient, member: int):
    challenge = await create_challenge()
    client.cookies.delete(settings.session_cookie_name)
    _, admin_token = await create_member(email="boss@test.com", role="admin")
    client.cookies.set(settings.session_cookie_name, admin_token)

    async with async_session_maker() as session:
        participant = await join_challenge(session, challenge.id, member)
        await session.commit()
    await client.post(
        "/api/v1/dashboard/contributions",
        json={
            "participant_id": str(participant.id),
            "external_activity_id": 10,
            "value": 1199,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
        },
    )

    resp = await client.get("/api/v1/dashboard")
    entry = resp.json()["challenges"][0]
    assert entry["leaderboard"][0]["rank"] == 1
    assert entry["leaderboard"][0]["participant"]["result_display"] == "19:59"
    assert entry["stats"]["finishers"] == 1
    assert entry["stats"]["total_distance_km"] == "5.0"
