"""Pydantic schemas for landing page content (memories, routine schedules)."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from washedup.schemas.profile import SessionOut


class MemoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    src: str
    caption: str
    sort_order: int
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoutineScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    day: str
    time: str
    location: str
    accent_color: str
    description: str
    sort_order: int
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class HomePageData(BaseModel):
    session: SessionOut | None
    memories: list[MemoryOut]
    routine_schedules: list[RoutineScheduleOut]
    error_message: str | None = None
