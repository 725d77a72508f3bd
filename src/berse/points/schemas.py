"""Pydantic response models for points endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PointGrantResponse(BaseModel):
    id: int
    amount: int
    action: str
    description: str | None = None
    created_at: datetime
    expires_at: datetime


class PointsBalanceResponse(BaseModel):
    user_id: int
    available_points: int
    exempt_from_expiry: bool
    grants: list[PointGrantResponse]


class ExpiryLastRun(BaseModel):
    started_at: str | None = None
    records_expired: int
    points_expired: int
    batches: int
    warnings_sent: int
    duration_seconds: float


class ExpiryJobStatusResponse(BaseModel):
    is_scheduled: bool
    is_running: bool
    schedule: str
    last_run: ExpiryLastRun | None = None


class ExpiryRunResponse(BaseModel):
    skipped: bool
    warnings_sent: dict[int, int]
    batches: int
    records_expired: int
    points_expired: int
    duration_seconds: float
