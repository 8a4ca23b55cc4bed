"""Challenge queries, participation and contribution bookkeeping."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from washedup.core.time_utils import ensure_utc, utcnow
from washedup.models.challenge import (
    Challenge,
    ChallengeContribution,
    ChallengeParticipant,
    ChallengeStatus,
    ChallengeType,
    ParticipantStatus,
)
from washedup.services.leaderboard import sort_participants

logger = logging.getLogger(__name__)


class DuplicateContributionError(Exception):
    """The activity is already counted for this participant."""


@dataclass
class ChallengeWithParticipation:
    challenge: Challenge
    is_participating: bool
    participant: ChallengeParticipant | None


@dataclass
class DashboardData:
    challenges_with_participation: list[ChallengeWithParticipation] = field(default_factory=list)
    participants_by_challenge: dict[uuid.UUID, list[ChallengeParticipant]] = field(default_factory=dict)


def is_challenge_joinable(challenge: Challenge, now: datetime | None = None) -> bool:
    """Active status, active flag, and now within [start_date, end_date)."""
    now = now or utcnow()
    return (
        challenge.status == ChallengeStatus.active.value
        and bool(challenge.is_active)
        and now < ensure_utc(challenge.end_date)
        and now >= ensure_utc(challenge.start_date)
    )


def get_time_remaining(end_date: datetime, now: datetime | None = None) -> timedelta:
    """Negative once the end date has passed."""
    return ensure_utc(end_date) - (now or utcnow())


def format_time_remaining(end_date: datetime, now: datetime | None = None) -> str:
    """Countdown as HH:MM:SS within the current day; 00:00:00 once expired."""
    remaining = get_time_remaining(end_date, now)
    if remaining <= timedelta(0):
        return "00:00:00"
    seconds = int(remaining.total_seconds()) % 86400
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_result_display(challenge_type: str, value: float | None) -> str | None:
    """Times (seconds) as H:MM:SS or M:SS; cumulative volume (meters) as kilometres."""
    if value is None:
        return None
    if challenge_type == ChallengeType.cumulative.value:
        return f"{value / 1000:.1f} km"
    total = int(round(value))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def recompute_participant_result(
    challenge: Challenge,
    participant: ChallengeParticipant,
    contributions: list[ChallengeContribution],
) -> None:
    """Refresh the participant's cached result from its valid contributions."""
    valid = [c for c in contributions if c.is_valid]
    keep_status = participant.status == ParticipantStatus.did_not_finish.value

    if not valid:
        participant.result_value = None
        participant.result_display = None
        participant.highlight_activity_id = None
        if not keep_status:
            participant.status = ParticipantStatus.registered.value
        return

    if challenge.type == ChallengeType.cumulative.value:
        total = sum(c.value for c in valid)
        latest = max(valid, key=lambda c: ensure_utc(c.occurred_at))
        participant.result_value = total
        participant.highlight_activity_id = latest.external_activity_id
        finished = bool(challenge.goal_value) and total >= challenge.goal_value
        status = ParticipantStatus.completed if finished else ParticipantStatus.in_progress
    else:
        best = min(valid, key=lambda c: c.value)
        participant.result_value = best.value
        participant.highlight_activity_id = best.external_activity_id
        status = ParticipantStatus.completed

    participant.result_display = format_result_display(challenge.type, participant.result_value)
    if not keep_status:
        participant.status = status.value
    participant.updated_at = utcnow()


async def load_challenge(session: AsyncSession, challenge_id: uuid.UUID) -> Challenge | None:
    r = await session.execute(select(Challenge).where(Challenge.id == challenge_id))
    return r.scalar_one_or_none()


async def load_active_challenges(session: AsyncSession) -> list[Challenge]:
    r = await session.execute(
        select(Challenge).where(Challenge.is_active.is_(True)).order_by(Challenge.start_date.asc())
    )
    return list(r.scalars().all())


def _with_relations(stmt):
    return stmt.options(
        selectinload(ChallengeParticipant.profile),
        selectinload(ChallengeParticipant.contributions),
    )


async def check_user_participation(
    session: AsyncSession,
    challenge_id: uuid.UUID,
    profile_id: int,
) -> ChallengeParticipant | None:
    r = await session.execute(
        _with_relations(
            select(ChallengeParticipant).where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.profile_id == profile_id,
            )
        )
    )
    return r.scalar_one_or_none()


async def load_challenge_participants(session: AsyncSession, challenge: Challenge) -> list[ChallengeParticipant]:
    """Participants with profile and contributions, in leaderboard order for the challenge type."""
    r = await session.execute(
        _with_relations(
            select(ChallengeParticipant)
            .where(ChallengeParticipant.challenge_id == challenge.id)
            .order_by(ChallengeParticipant.joined_at.asc())
        )
    )
    return sort_participants(r.scalars().all(), challenge.type)


async def load_dashboard_data(session: AsyncSession, profile_id: int) -> DashboardData:
    """Active challenges with the caller's participation and every challenge's sorted participants."""
    data = DashboardData()
    challenges = await load_active_challenges(session)
    if not challenges:
        return data

    r = await session.execute(
        _with_relations(
            select(ChallengeParticipant)
            .where(ChallengeParticipant.challenge_id.in_([c.id for c in challenges]))
            .order_by(ChallengeParticipant.joined_at.asc())
        )
    )
    grouped: dict[uuid.UUID, list[ChallengeParticipant]] = {}
    for participant in r.scalars().all():
        grouped.setdefault(participant.challenge_id, []).append(participant)

    for challenge in challenges:
        participants = sort_participants(grouped.get(challenge.id, []), challenge.type)
        data.participants_by_challenge[challenge.id] = participants
        mine = next((p for p in participants if p.profile_id == profile_id), None)
        data.challenges_with_participation.append(
            ChallengeWithParticipation(challenge=challenge, is_participating=mine is not None, participant=mine)
        )
    return data


async def join_challenge(session: AsyncSession, challenge_id: uuid.UUID, profile_id: int) -> ChallengeParticipant:
    participant = ChallengeParticipant(
        challenge_id=challenge_id,
        profile_id=profile_id,
        status=ParticipantStatus.registered.value,
    )
    session.add(participant)
    await session.flush()
    return participant


async def leave_challenge(session: AsyncSession, participant_id: uuid.UUID) -> None:
    await session.execute(delete(ChallengeParticipant).where(ChallengeParticipant.id == participant_id))


async def _participant_contributions(session: AsyncSession, participant_id: uuid.UUID) -> list[ChallengeContribution]:
    r = await session.execute(
        select(ChallengeContribution)
        .where(ChallengeContribution.participant_id == participant_id)
        .order_by(ChallengeContribution.created_at.asc())
    )
    return list(r.scalars().all())


async def record_contribution(
    session: AsyncSession,
    challenge: Challenge,
    participant: ChallengeParticipant,
    external_activity_id: int,
    value: float,
    occurred_at: datetime,
    activity_name: str | None = None,
) -> ChallengeContribution:
    """Count an activity toward the participant's result. Each activity counts once per participant."""
    r = await session.execute(
        select(ChallengeContribution.id).where(
            ChallengeContribution.participant_id == participant.id,
            ChallengeContribution.external_activity_id == external_activity_id,
        )
    )
    if r.scalar_one_or_none() is not None:
        raise DuplicateContributionError(f"Activity {external_activity_id} is already counted")

    contribution = ChallengeContribution(
        participant_id=participant.id,
        external_activity_id=external_activity_id,
        activity_name=activity_name,
        value=value,
        occurred_at=occurred_at,
    )
    try:
        async with session.begin_nested():
            session.add(contribution)
    except IntegrityError as e:
        # Concurrent insert of the same activity won the race
        raise DuplicateContributionError(f"Activity {external_activity_id} is already counted") from e

    recompute_participant_result(challenge, participant, await _participant_contributions(session, participant.id))
    await session.flush()
    return contribution


async def set_contribution_validity(
    session: AsyncSession,
    challenge: Challenge,
    participant: ChallengeParticipant,
    contribution: ChallengeContribution,
    is_valid: bool,
) -> None:
    """Soft-disqualify (or reinstate) a contribution and refresh the participant's result."""
    contribution.is_valid = is_valid
    await session.flush()
    recompute_participant_result(challenge, participant, await _participant_contributions(session, participant.id))
    await session.flush()
    logger.info("Contribution %s marked %s", contribution.id, "valid" if is_valid else "invalid")
