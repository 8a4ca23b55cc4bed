from washedup.models.user import User
from washedup.models.profile import Profile, ProfileRole
from washedup.models.refresh_token import RefreshToken
from washedup.models.login_link import LoginLink
from washedup.models.strava_connection import StravaConnection
from washedup.models.content import Memory, RoutineSchedule
from washedup.models.challenge import (
    Challenge,
    ChallengeContribution,
    ChallengeParticipant,
    ChallengeStatus,
    ChallengeType,
    ParticipantStatus,
)
from washedup.models.audit_log import AuditLog

__all__ = [
    "User",
    "Profile",
    "ProfileRole",
    "RefreshToken",
    "LoginLink",
    "StravaConnection",
    "Memory",
    "RoutineSchedule",
    "Challenge",
    "ChallengeContribution",
    "ChallengeParticipant",
    "ChallengeStatus",
    "ChallengeType",
    "ParticipantStatus",
    "AuditLog",
]
