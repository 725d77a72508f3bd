"""Shared FastAPI dependencies."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from berse.config import Settings, get_settings
from berse.points.expiry_job import PointExpiryJob


_admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


async def require_admin_key(
    api_key: str | None = Security(_admin_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless X-Admin-Key matches the configured admin key."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=503, detail="Admin API is not configured")
    if api_key is None or not secrets.compare_digest(api_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid admin key")


def get_point_expiry_job(request: Request) -> PointExpiryJob:
    job: PointExpiryJob | None = getattr(request.app.state, "point_expiry_job", None)
    if job is None:
        raise HTTPException(status_code=503, detail="Point expiry job is not initialized")
    return job
