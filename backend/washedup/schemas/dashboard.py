"""Pydantic schemas for challenges, leaderboards and the dashboard."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from washedup.schemas.profile import ProfileOut


class ChallengeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str
    type: str
    goal_value: int | None
    segment_id: int | None
    start_date: datetime
    end_date: datetime
    status: str
    is_active: bool
    created_at: datetime | None = None


class ContributionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    external_activity_id: int
    activity_name: str | None
    value: float
    is_valid: bool
    occurred_at: datetime


class ParticipantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    challenge_id: uuid.UUID
    profile_id: int
    status: str
    result_value: float | None
    result_display: str | None
    highlight_activity_id: int | None
    updated_at: datetime | None = None


class LeaderboardRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant: ParticipantOut
    profile: ProfileOut | None
    contribution: ContributionOut | None
    rank: int | None


class ChallengeStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_runners: int
    finishers: int
    active_runners: int
    total_distance_km: str


class DashboardChallenge(BaseModel):
    challenge: ChallengeOut
    is_participating: bool
    participant: ParticipantOut | None
    joinable: bool
    time_left: str
    leaderboard: list[LeaderboardRowOut]
    stats: ChallengeStatsOut


class DashboardData(BaseModel):
    profile: ProfileOut
    challenges: list[DashboardChallenge]


class ChallengeWithParticipantsOut(ChallengeOut):
    participants: list[ParticipantOut]


class ContributionCreate(BaseModel):
    participant_id: uuid.UUID
    external_activity_id: int
    value: float
    occurred_at: datetime
    activity_name: str | None = None


class ContributionValidityUpdate(BaseModel):
    is_valid: bool
