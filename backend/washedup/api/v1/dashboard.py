"""Dashboard: active challenges, leaderboards, joining and leaving, recorded contributions."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from washedup.api.deps import Context, get_current_profile, require_admin, require_member
from washedup.api.responses import fail, success
from washedup.core.time_utils import utcnow
from washedup.models.challenge import ChallengeContribution, ChallengeParticipant
from washedup.models.profile import Profile
from washedup.schemas.dashboard import (
    ChallengeOut,
    ChallengeStatsOut,
    ContributionCreate,
    ContributionValidityUpdate,
    DashboardChallenge,
    DashboardData,
    LeaderboardRowOut,
    ParticipantOut,
)
from washedup.schemas.profile import ProfileOut
from washedup.services import challenges as challenge_service
from washedup.services.audit import log_admin_action
from washedup.services.leaderboard import build_leaderboard, challenge_stats

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _parse_challenge_id(raw: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


@router.get("", response_model=DashboardData, summary="Active challenges with leaderboards")
async def get_dashboard(
    ctx: Context,
    profile: Annotated[Profile, Depends(get_current_profile)],
) -> DashboardData:
    now = utcnow()
    data = await challenge_service.load_dashboard_data(ctx.db, profile.id)
    items: list[DashboardChallenge] = []
    for entry in data.challenges_with_participation:
        challenge = entry.challenge
        rows = build_leaderboard(data.participants_by_challenge.get(challenge.id, []))
        items.append(
            DashboardChallenge(
                challenge=ChallengeOut.model_validate(challenge),
                is_participating=entry.is_participating,
                participant=ParticipantOut.model_validate(entry.participant) if entry.participant else None,
                joinable=challenge_service.is_challenge_joinable(challenge, now),
                time_left=challenge_service.format_time_remaining(challenge.end_date, now),
                leaderboard=[LeaderboardRowOut.model_validate(row) for row in rows],
                stats=ChallengeStatsOut.model_validate(challenge_stats(rows, challenge.goal_value)),
            )
        )
    return DashboardData(profile=ProfileOut.model_validate(profile), challenges=items)


@router.post("/join", summary="Join a challenge")
async def join_challenge(
    ctx: Context,
    challenge_id: Annotated[str | None, Form(alias="challengeId")] = None,
):
    if denied := require_member(ctx, "You must be logged in to join a challenge"):
        return denied
    if not challenge_id:
        return fail(400, "Challenge ID is required")

    parsed_id = _parse_challenge_id(challenge_id)
    challenge = await challenge_service.load_challenge(ctx.db, parsed_id) if parsed_id else None
    if challenge is None:
        return fail(404, "Challenge not found")
    if not challenge_service.is_challenge_joinable(challenge, ctx.clock()):
        return fail(400, "Challenge is not joinable. It may have ended or is not active.")
    if await challenge_service.check_user_participation(ctx.db, challenge.id, ctx.profile.id):
        return fail(400, "You are already participating in this challenge")

    try:
        participant = await challenge_service.join_challenge(ctx.db, challenge.id, ctx.profile.id)
        await ctx.db.commit()
    except IntegrityError:
        await ctx.db.rollback()
        return fail(400, "You are already participating in this challenge")
    except SQLAlchemyError:
        logger.exception("Error joining challenge %s", challenge.id)
        await ctx.db.rollback()
        return fail(500, "Failed to join challenge. Please try again.")

    logger.info("Profile %s joined challenge %s", ctx.profile.id, challenge.id)
    return success(participant_id=str(participant.id))


@router.post("/leave", summary="Leave a challenge")
async def leave_challenge(
    ctx: Context,
    challenge_id: Annotated[str | None, Form(alias="challengeId")] = None,
):
    if denied := require_member(ctx, "You must be logged in to leave a challenge"):
        return denied
    if not challenge_id:
        return fail(400, "Challenge ID is required")

    parsed_id = _parse_challenge_id(challenge_id)
    participant = (
        await challenge_service.check_user_participation(ctx.db, parsed_id, ctx.profile.id) if parsed_id else None
    )
    if participant is None:
        return fail(404, "You are not participating in this challenge")

    try:
        await challenge_service.leave_challenge(ctx.db, participant.id)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Error leaving challenge %s", parsed_id)
        await ctx.db.rollback()
        return fail(500, "Failed to leave challenge. Please try again.")
    return success()


@router.post("/contributions", summary="Record a qualifying activity (admin)")
async def record_contribution(request: Request, ctx: Context, body: ContributionCreate):
    """Count an external activity toward a participant's result; each activity counts once."""
    if denied := require_admin(ctx):
        return denied

    participant = await ctx.db.get(ChallengeParticipant, body.participant_id)
    if participant is None:
        return fail(404, "Participant not found")
    challenge = await challenge_service.load_challenge(ctx.db, participant.challenge_id)

    try:
        contribution = await challenge_service.record_contribution(
            ctx.db,
            challenge,
            participant,
            external_activity_id=body.external_activity_id,
            value=body.value,
            occurred_at=body.occurred_at,
            activity_name=body.activity_name,
        )
        await log_admin_action(
            ctx.db,
            ctx.profile.id,
            "create",
            "contribution",
            contribution.id,
            {"external_activity_id": body.external_activity_id},
            request=request,
        )
        await ctx.db.commit()
    except challenge_service.DuplicateContributionError as e:
        await ctx.db.rollback()
        return fail(400, str(e))
    except SQLAlchemyError:
        logger.exception("Error recording contribution for participant %s", participant.id)
        await ctx.db.rollback()
        return fail(500, "Failed to record contribution. Please try again.")

    return success(
        contribution_id=str(contribution.id),
        status=participant.status,
        result_display=participant.result_display,
    )


@router.post("/contributions/{contribution_id}/validity", summary="Disqualify or reinstate a contribution (admin)")
async def set_contribution_validity(
    request: Request,
    ctx: Context,
    contribution_id: uuid.UUID,
    body: ContributionValidityUpdate,
):
    if denied := require_admin(ctx):
        return denied

    contribution = await ctx.db.get(ChallengeContribution, contribution_id)
    if contribution is None:
        return fail(404, "Contribution not found")
    participant = await ctx.db.get(ChallengeParticipant, contribution.participant_id)
    challenge = await challenge_service.load_challenge(ctx.db, participant.challenge_id)

    try:
        await challenge_service.set_contribution_validity(ctx.db, challenge, participant, contribution, body.is_valid)
        await log_admin_action(
            ctx.db,
            ctx.profile.id,
            "validate" if body.is_valid else "invalidate",
            "contribution",
            contribution.id,
            request=request,
        )
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Error updating contribution %s", contribution_id)
        await ctx.db.rollback()
        return fail(500, "Failed to update contribution. Please try again.")

    return success(status=participant.status, result_display=participant.result_display)
