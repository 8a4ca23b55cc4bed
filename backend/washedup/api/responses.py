"""Structured results for form actions: ``{"success": true}`` or ``{"error": ...}`` with a status code."""

from fastapi.responses import JSONResponse


def fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def success(**extra) -> dict:
    return {"success": True, **extra}
