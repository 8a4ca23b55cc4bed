"""Audit trail for admin mutations (who changed which memory, schedule or challenge)."""

import uuid

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from washedup.models.audit_log import AuditLog


def client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()[:45]
    return request.client.host if request.client else None


async def log_admin_action(
    session: AsyncSession,
    actor_id: int | None,
    action: str,
    resource: str,
    resource_id: uuid.UUID | str | None = None,
    details: dict | None = None,
    request: Request | None = None,
) -> None:
    session.add(
        AuditLog(
            user_id=actor_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            ip_address=client_ip(request),
        )
    )
    await session.flush()
