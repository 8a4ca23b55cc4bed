"""Public landing page content."""

import logging

from fastapi import APIRouter
from sqlalchemy import select

from washedup.api.deps import Context
from washedup.core.constants import auth_error_message
from washedup.models.content import Memory, RoutineSchedule
from washedup.schemas.content import HomePageData, MemoryOut, RoutineScheduleOut
from washedup.schemas.profile import SessionOut

logger = logging.getLogger(__name__)
router = APIRouter(tags=["content"])


@router.get("/home", response_model=HomePageData, summary="Landing page data")
async def home(ctx: Context, error: str | None = None) -> HomePageData:
    """Active memories and routine schedules by sort order. ``error`` is an OAuth callback code."""
    memories = (
        await ctx.db.execute(select(Memory).where(Memory.is_active.is_(True)).order_by(Memory.sort_order.asc()))
    ).scalars().all()
    schedules = (
        await ctx.db.execute(
            select(RoutineSchedule)
            .where(RoutineSchedule.is_active.is_(True))
            .order_by(RoutineSchedule.sort_order.asc())
        )
    ).scalars().all()

    session = ctx.auth.session if ctx.auth.is_authenticated else None
    return HomePageData(
        session=(
            SessionOut(user_id=session.user_id, expires_at=session.expires_at, expires_in=session.expires_in)
            if session
            else None
        ),
        memories=[MemoryOut.model_validate(m) for m in memories],
        routine_schedules=[RoutineScheduleOut.model_validate(s) for s in schedules],
        error_message=auth_error_message(error) if error else None,
    )
