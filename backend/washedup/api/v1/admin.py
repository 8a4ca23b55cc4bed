"""
Admin panel: landing page memories, routine schedules and challenges.

Every action takes form data and answers ``{"success": true}`` or
``{"error": ...}`` with a 4xx/5xx status. Ids are generated client-side (UUIDs)
so a retried create is rejected instead of duplicated.
"""

import json
import logging
import re
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import RedirectResponse
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from washedup.api.deps import Context, require_admin
from washedup.api.responses import fail, success
from washedup.config import settings
from washedup.core.time_utils import ensure_utc, utcnow
from washedup.models.challenge import Challenge, ChallengeStatus, ChallengeType
from washedup.models.content import Memory, RoutineSchedule
from washedup.schemas.admin import AdminPageData
from washedup.schemas.content import MemoryOut, RoutineScheduleOut
from washedup.schemas.dashboard import ChallengeWithParticipantsOut
from washedup.schemas.profile import ProfileOut
from washedup.services import storage
from washedup.services.audit import log_admin_action

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])

ALLOWED_MEMORY_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
VALID_CHALLENGE_TYPES = tuple(t.value for t in ChallengeType)
VALID_CHALLENGE_STATUSES = tuple(s.value for s in ChallengeStatus)
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

# field -> (label, max length)
_SCHEDULE_LIMITS = {
    "day": ("Day", 50),
    "time": ("Time", 20),
    "location": ("Location", 200),
    "accent_color": ("Accent color", 100),
    "description": ("Description", 500),
}

OptionalForm = Annotated[str | None, Form()]


def parse_uuid(raw: str | None) -> uuid.UUID | None:
    if not raw or not _UUID_RE.match(raw):
        return None
    return uuid.UUID(raw)


def _parse_int(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _parse_datetime(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(raw.strip()))
    except ValueError:
        return None


def _clean(raw: str | None) -> str:
    return (raw or "").strip()


def _validate_caption(caption: str) -> str | None:
    if not caption:
        return "Caption is required."
    if len(caption) > 500:
        return "Caption must be 500 characters or less."
    return None


def validate_schedule_fields(fields: dict[str, str]) -> str | None:
    for name, (label, limit) in _SCHEDULE_LIMITS.items():
        value = fields.get(name, "")
        if not value or len(value) > limit:
            return f"{label} is required and must be {limit} characters or less."
    return None


def validate_challenge_fields(
    title: str,
    challenge_type: str,
    status: str,
    goal_value_raw: str | None,
    segment_id_raw: str | None,
    start_date_raw: str | None,
    end_date_raw: str | None,
) -> tuple[dict | None, str | None]:
    """Return (column values, None) or (None, error message)."""
    if not title or len(title) > 200:
        return None, "Title is required and must be 200 characters or less."
    if challenge_type not in VALID_CHALLENGE_TYPES:
        return None, "Invalid challenge type."
    if status not in VALID_CHALLENGE_STATUSES:
        return None, "Invalid challenge status."

    goal_value = _parse_int(goal_value_raw)
    segment_id = _parse_int(segment_id_raw)
    start_date = _parse_datetime(start_date_raw)
    end_date = _parse_datetime(end_date_raw)

    if challenge_type in (ChallengeType.cumulative.value, ChallengeType.best_effort.value) and (
        goal_value is None or goal_value <= 0
    ):
        return None, "Goal value is required for cumulative and best-effort challenges."
    if challenge_type == ChallengeType.segment_race.value and segment_id is None:
        return None, "Segment ID is required for segment race challenges."
    if start_date is None:
        return None, "Start date is required and must be valid."
    if end_date is None:
        return None, "End date is required and must be valid."
    if start_date >= end_date:
        return None, "End date must be after start date."

    values = {
        "title": title,
        "type": challenge_type,
        "status": status,
        "start_date": start_date,
        "end_date": end_date,
    }
    # Absent numbers leave the stored value untouched on update
    if goal_value is not None:
        values["goal_value"] = goal_value
    if segment_id is not None:
        values["segment_id"] = segment_id
    return values, None


async def _next_sort_order(session, column) -> int:
    r = await session.execute(select(func.max(column)))
    last = r.scalar_one_or_none()
    return (last if last is not None else -1) + 1


@router.get("", response_model=AdminPageData, summary="Admin panel data")
async def admin_data(ctx: Context):
    """Memories and schedules by sort order, challenges by start date with participants. Non-admins go home."""
    profile = ctx.profile
    if profile is None or not profile.is_admin:
        logger.warning("Non-admin access to admin panel (profile=%s)", profile.id if profile else None)
        return RedirectResponse("/", status_code=302)

    memories, schedules, challenges = [], [], []
    try:
        memories = (await ctx.db.execute(select(Memory).order_by(Memory.sort_order.asc()))).scalars().all()
        schedules = (
            (await ctx.db.execute(select(RoutineSchedule).order_by(RoutineSchedule.sort_order.asc()))).scalars().all()
        )
        challenges = (
            (
                await ctx.db.execute(
                    select(Challenge)
                    .options(selectinload(Challenge.participants))
                    .order_by(Challenge.start_date.asc())
                )
            )
            .scalars()
            .all()
        )
    except SQLAlchemyError:
        logger.exception("Admin load error")
        memories, schedules, challenges = [], [], []

    return AdminPageData(
        profile=ProfileOut.model_validate(profile),
        memories=[MemoryOut.model_validate(m) for m in memories],
        routine_schedules=[RoutineScheduleOut.model_validate(s) for s in schedules],
        challenges=[ChallengeWithParticipantsOut.model_validate(c) for c in challenges],
    )


# --- Memories ---


@router.post("/memories", summary="Create memory (image upload)")
async def create_memory(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    caption: OptionalForm = None,
    file: Annotated[UploadFile | None, File()] = None,
):
    if denied := require_admin(ctx):
        return denied

    memory_id = parse_uuid(id)
    if memory_id is None:
        return fail(400, "Invalid ID.")
    if await ctx.db.get(Memory, memory_id) is not None:
        return fail(400, "Memory already exists.")

    image_bytes = await file.read() if file is not None else b""
    if not image_bytes:
        return fail(400, "Please select an image to upload.")
    if file.content_type not in ALLOWED_MEMORY_TYPES:
        return fail(400, "Invalid file type. Allowed: JPEG, PNG, WebP, GIF.")
    if len(image_bytes) > settings.memory_max_size_bytes:
        return fail(413, "Image must be 5MB or smaller.")
    caption = _clean(caption)
    if error := _validate_caption(caption):
        return fail(400, error)

    try:
        path = await storage.upload_memory_image(image_bytes, file.content_type, file.filename)
    except storage.StorageError:
        logger.exception("Storage upload error")
        return fail(500, "Failed to upload image. Please try again.")

    try:
        ctx.db.add(
            Memory(
                id=memory_id,
                src=storage.public_url(path),
                caption=caption,
                sort_order=await _next_sort_order(ctx.db, Memory.sort_order),
                is_active=True,
            )
        )
        await log_admin_action(
            ctx.db, ctx.profile.id, "create", "memory", memory_id, {"path": path}, request=request
        )
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("DB insert error after upload")
        await ctx.db.rollback()
        try:
            await storage.delete_memory_image(path)
        except storage.StorageError:
            logger.exception("Failed to remove orphaned upload %s", path)
        return fail(500, "Failed to save memory. Please try again.")

    return success()


@router.post("/memories/update", summary="Update memory caption, order and visibility")
async def update_memory(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    caption: OptionalForm = None,
    sort_order: Annotated[str | None, Form(alias="sortOrder")] = None,
    is_active: Annotated[str | None, Form(alias="isActive")] = None,
):
    if denied := require_admin(ctx):
        return denied

    memory_id = parse_uuid(id)
    if memory_id is None:
        return fail(400, "Invalid memory ID.")
    if await ctx.db.get(Memory, memory_id) is None:
        return fail(404, "Memory not found.")

    caption = _clean(caption)
    if error := _validate_caption(caption):
        return fail(400, error)
    order = _parse_int(sort_order)
    if order is None or order < 0:
        return fail(400, "Sort order must be a non-negative number.")

    try:
        await ctx.db.execute(
            update(Memory)
            .where(Memory.id == memory_id)
            .values(caption=caption, sort_order=order, is_active=is_active == "true", updated_at=utcnow())
        )
        await log_admin_action(ctx.db, ctx.profile.id, "update", "memory", memory_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Update memory error")
        await ctx.db.rollback()
        return fail(500, "Failed to update memory. Please try again.")
    return success()


@router.post("/memories/delete", summary="Delete memory and its image")
async def delete_memory(request: Request, ctx: Context, id: OptionalForm = None):
    if denied := require_admin(ctx):
        return denied

    memory_id = parse_uuid(id)
    if memory_id is None:
        return fail(400, "Invalid memory ID.")
    memory = await ctx.db.get(Memory, memory_id)
    if memory is None:
        return fail(404, "Memory not found.")

    path = storage.memory_path_from_src(memory.src)
    if path:
        try:
            await storage.delete_memory_image(path)
        except storage.StorageError:
            logger.exception("Failed to remove image for memory %s", memory_id)

    try:
        await ctx.db.execute(delete(Memory).where(Memory.id == memory_id))
        await log_admin_action(ctx.db, ctx.profile.id, "delete", "memory", memory_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Delete memory error")
        await ctx.db.rollback()
        return fail(500, "Failed to delete memory. Please try again.")
    return success()


@router.post("/memories/reorder", summary="Reorder memories")
async def reorder_memories(
    request: Request,
    ctx: Context,
    ordered_ids: Annotated[str | None, Form(alias="orderedIds")] = None,
):
    """``orderedIds`` is a JSON array of memory ids; position becomes sort order."""
    if denied := require_admin(ctx):
        return denied

    if not ordered_ids:
        return fail(400, "Ordered IDs are required.")
    try:
        raw_ids = json.loads(ordered_ids)
    except ValueError:
        return fail(400, "Invalid ordered IDs format.")
    if not isinstance(raw_ids, list) or not raw_ids:
        return fail(400, "Ordered IDs must be a non-empty array.")
    ids = [parse_uuid(i) if isinstance(i, str) else None for i in raw_ids]
    if any(i is None for i in ids):
        return fail(400, "All IDs must be valid UUIDs.")

    try:
        now = utcnow()
        for position, memory_id in enumerate(ids):
            await ctx.db.execute(
                update(Memory).where(Memory.id == memory_id).values(sort_order=position, updated_at=now)
            )
        await log_admin_action(
            ctx.db, ctx.profile.id, "reorder", "memory", details={"count": len(ids)}, request=request
        )
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Reorder memories error")
        await ctx.db.rollback()
        return fail(500, "Failed to reorder memories. Please try again.")
    return success()


# --- Routine schedules ---


def _schedule_fields(day, time, location, accent_color, description) -> dict[str, str]:
    return {
        "day": _clean(day),
        "time": _clean(time),
        "location": _clean(location),
        "accent_color": _clean(accent_color),
        "description": _clean(description),
    }


@router.post("/routine-schedules", summary="Create routine schedule")
async def create_routine_schedule(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    day: OptionalForm = None,
    time: OptionalForm = None,
    location: OptionalForm = None,
    accent_color: Annotated[str | None, Form(alias="accentColor")] = None,
    description: OptionalForm = None,
):
    if denied := require_admin(ctx):
        return denied

    schedule_id = parse_uuid(id)
    if schedule_id is None:
        return fail(400, "Invalid ID.")
    if await ctx.db.get(RoutineSchedule, schedule_id) is not None:
        return fail(400, "Schedule already exists.")

    fields = _schedule_fields(day, time, location, accent_color, description)
    if error := validate_schedule_fields(fields):
        return fail(400, error)

    try:
        ctx.db.add(
            RoutineSchedule(
                id=schedule_id,
                **fields,
                sort_order=await _next_sort_order(ctx.db, RoutineSchedule.sort_order),
                is_active=True,
            )
        )
        await log_admin_action(ctx.db, ctx.profile.id, "create", "routine_schedule", schedule_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Create routine schedule error")
        await ctx.db.rollback()
        return fail(500, "Failed to create schedule. Please try again.")
    return success()


@router.post("/routine-schedules/update", summary="Update routine schedule")
async def update_routine_schedule(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    day: OptionalForm = None,
    time: OptionalForm = None,
    location: OptionalForm = None,
    accent_color: Annotated[str | None, Form(alias="accentColor")] = None,
    description: OptionalForm = None,
):
    if denied := require_admin(ctx):
        return denied

    schedule_id = parse_uuid(id)
    if schedule_id is None:
        return fail(400, "Invalid schedule ID.")
    if await ctx.db.get(RoutineSchedule, schedule_id) is None:
        return fail(404, "Schedule not found.")

    fields = _schedule_fields(day, time, location, accent_color, description)
    if error := validate_schedule_fields(fields):
        return fail(400, error)

    try:
        await ctx.db.execute(
            update(RoutineSchedule)
            .where(RoutineSchedule.id == schedule_id)
            .values(**fields, updated_at=utcnow())
        )
        await log_admin_action(ctx.db, ctx.profile.id, "update", "routine_schedule", schedule_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Update routine schedule error")
        await ctx.db.rollback()
        return fail(500, "Failed to update schedule. Please try again.")
    return success()


@router.post("/routine-schedules/delete", summary="Delete routine schedule")
async def delete_routine_schedule(request: Request, ctx: Context, id: OptionalForm = None):
    if denied := require_admin(ctx):
        return denied

    schedule_id = parse_uuid(id)
    if schedule_id is None:
        return fail(400, "Invalid schedule ID.")
    if await ctx.db.get(RoutineSchedule, schedule_id) is None:
        return fail(404, "Schedule not found.")

    try:
        await ctx.db.execute(delete(RoutineSchedule).where(RoutineSchedule.id == schedule_id))
        await log_admin_action(ctx.db, ctx.profile.id, "delete", "routine_schedule", schedule_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Delete routine schedule error")
        await ctx.db.rollback()
        return fail(500, "Failed to delete schedule. Please try again.")
    return success()


@router.post("/routine-schedules/toggle", summary="Show or hide routine schedule")
async def toggle_routine_schedule(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    is_active: Annotated[str | None, Form(alias="isActive")] = None,
):
    if denied := require_admin(ctx):
        return denied

    schedule_id = parse_uuid(id)
    if schedule_id is None:
        return fail(400, "Invalid schedule ID.")
    if await ctx.db.get(RoutineSchedule, schedule_id) is None:
        return fail(404, "Schedule not found.")

    active = is_active == "true"
    try:
        await ctx.db.execute(
            update(RoutineSchedule)
            .where(RoutineSchedule.id == schedule_id)
            .values(is_active=active, updated_at=utcnow())
        )
        await log_admin_action(
            ctx.db, ctx.profile.id, "toggle", "routine_schedule", schedule_id, {"is_active": active}, request=request
        )
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Toggle routine schedule error")
        await ctx.db.rollback()
        return fail(500, "Failed to update schedule. Please try again.")
    return success()


# --- Challenges ---


@router.post("/challenges", summary="Create challenge")
async def create_challenge(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    title: OptionalForm = None,
    description: OptionalForm = None,
    challenge_type: Annotated[str | None, Form(alias="type")] = None,
    goal_value: Annotated[str | None, Form(alias="goalValue")] = None,
    segment_id: Annotated[str | None, Form(alias="segmentId")] = None,
    start_date: Annotated[str | None, Form(alias="startDate")] = None,
    end_date: Annotated[str | None, Form(alias="endDate")] = None,
    status: OptionalForm = None,
):
    if denied := require_admin(ctx):
        return denied

    challenge_id = parse_uuid(id)
    if challenge_id is None:
        logger.warning("Invalid challenge ID: %s", id)
        return fail(400, "Invalid challenge ID.")
    if await ctx.db.get(Challenge, challenge_id) is not None:
        return fail(400, "Challenge already exists.")

    values, error = validate_challenge_fields(
        _clean(title),
        challenge_type or "",
        status or ChallengeStatus.upcoming.value,
        goal_value,
        segment_id,
        start_date,
        end_date,
    )
    if error:
        return fail(400, error)

    try:
        ctx.db.add(Challenge(id=challenge_id, description=_clean(description), **values))
        await log_admin_action(
            ctx.db, ctx.profile.id, "create", "challenge", challenge_id, {"type": values["type"]}, request=request
        )
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Create challenge error")
        await ctx.db.rollback()
        return fail(500, "Failed to create challenge. Please try again.")
    return success()


@router.post("/challenges/update", summary="Update challenge")
async def update_challenge(
    request: Request,
    ctx: Context,
    id: OptionalForm = None,
    title: OptionalForm = None,
    description: OptionalForm = None,
    challenge_type: Annotated[str | None, Form(alias="type")] = None,
    goal_value: Annotated[str | None, Form(alias="goalValue")] = None,
    segment_id: Annotated[str | None, Form(alias="segmentId")] = None,
    start_date: Annotated[str | None, Form(alias="startDate")] = None,
    end_date: Annotated[str | None, Form(alias="endDate")] = None,
    status: OptionalForm = None,
):
    if denied := require_admin(ctx):
        return denied

    challenge_id = parse_uuid(id)
    if challenge_id is None:
        return fail(400, "Invalid challenge ID.")
    if await ctx.db.get(Challenge, challenge_id) is None:
        return fail(404, "Challenge not found.")

    values, error = validate_challenge_fields(
        _clean(title),
        challenge_type or "",
        status or ChallengeStatus.upcoming.value,
        goal_value,
        segment_id,
        start_date,
        end_date,
    )
    if error:
        return fail(400, error)

    try:
        await ctx.db.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id)
            .values(description=_clean(description), updated_at=utcnow(), **values)
        )
        await log_admin_action(ctx.db, ctx.profile.id, "update", "challenge", challenge_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Update challenge error")
        await ctx.db.rollback()
        return fail(500, "Failed to update challenge. Please try again.")
    return success()


@router.post("/challenges/delete", summary="Delete challenge")
async def delete_challenge(request: Request, ctx: Context, id: OptionalForm = None):
    if denied := require_admin(ctx):
        return denied

    challenge_id = parse_uuid(id)
    if challenge_id is None:
        return fail(400, "Invalid challenge ID.")
    if await ctx.db.get(Challenge, challenge_id) is None:
        return fail(404, "Challenge not found.")

    try:
        await ctx.db.execute(delete(Challenge).where(Challenge.id == challenge_id))
        await log_admin_action(ctx.db, ctx.profile.id, "delete", "challenge", challenge_id, request=request)
        await ctx.db.commit()
    except SQLAlchemyError:
        logger.exception("Delete challenge error")
        await ctx.db.rollback()
        return fail(500, "Failed to delete challenge. Please try again.")
    return success()
