from pydantic import BaseModel

from washedup.schemas.content import MemoryOut, RoutineScheduleOut
from washedup.schemas.dashboard import ChallengeWithParticipantsOut
from washedup.schemas.profile import ProfileOut


class AdminPageData(BaseModel):
    profile: ProfileOut
    memories: list[MemoryOut]
    routine_schedules: list[RoutineScheduleOut]
    challenges: list[ChallengeWithParticipantsOut]
