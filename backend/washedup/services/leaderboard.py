"""Leaderboard ranking and stats for a challenge's participants."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from washedup.models.challenge import (
    ChallengeContribution,
    ChallengeParticipant,
    ChallengeType,
    ParticipantStatus,
)
from washedup.models.profile import Profile

# Completed first; among the rest, people still running ahead of those who only registered.
_STATUS_ORDER = {
    ParticipantStatus.completed.value: 0,
    ParticipantStatus.in_progress.value: 1,
    ParticipantStatus.registered.value: 2,
    ParticipantStatus.did_not_finish.value: 3,
}


@dataclass
class LeaderboardRow:
    participant: ChallengeParticipant
    profile: Profile | None
    contribution: ChallengeContribution | None
    rank: int | None


@dataclass
class ChallengeStats:
    total_runners: int
    finishers: int
    active_runners: int
    total_distance_km: str


def higher_is_better(challenge_type: str) -> bool:
    return challenge_type == ChallengeType.cumulative.value


def participant_sort_key(challenge_type: str):
    """Sort key: completed first, then best result (lowest time, or highest volume for cumulative); no result last."""
    descending = higher_is_better(challenge_type)

    def key(participant: ChallengeParticipant) -> tuple[int, float]:
        status_rank = _STATUS_ORDER.get(participant.status, len(_STATUS_ORDER))
        value = participant.result_value
        if value is None:
            return status_rank, math.inf
        return status_rank, -value if descending else value

    return key


def sort_participants(participants: Iterable[ChallengeParticipant], challenge_type: str) -> list[ChallengeParticipant]:
    return sorted(participants, key=participant_sort_key(challenge_type))


def build_leaderboard(participants: Sequence[ChallengeParticipant]) -> list[LeaderboardRow]:
    """Rank participants that are already in leaderboard order.

    Completed participants get dense ranks 1..K in input order; everyone else gets None.
    The first loaded contribution is attached for display (activity name).
    """
    rows: list[LeaderboardRow] = []
    current_rank = 1
    for participant in participants:
        rank = None
        if participant.status == ParticipantStatus.completed.value:
            rank = current_rank
            current_rank += 1
        contributions = participant.contributions or []
        rows.append(
            LeaderboardRow(
                participant=participant,
                profile=participant.profile,
                contribution=contributions[0] if contributions else None,
                rank=rank,
            )
        )
    return rows


def calculate_total_distance_km(rows: Iterable[LeaderboardRow], goal_value_meters: float | None) -> str:
    """Club distance for the stats grid, one decimal.

    Each finisher is credited the full goal distance rather than what they actually
    covered; in-progress distance is not counted.
    """
    if not goal_value_meters:
        return "0.0"
    total_km = 0.0
    for row in rows:
        if row.participant.status == ParticipantStatus.completed.value:
            total_km += goal_value_meters / 1000
    return f"{total_km:.1f}"


def challenge_stats(rows: Sequence[LeaderboardRow], goal_value_meters: float | None) -> ChallengeStats:
    return ChallengeStats(
        total_runners=len(rows),
        finishers=sum(1 for r in rows if r.participant.status == ParticipantStatus.completed.value),
        active_runners=sum(1 for r in rows if r.participant.status == ParticipantStatus.in_progress.value),
        total_distance_km=calculate_total_distance_km(rows, goal_value_meters),
    )
