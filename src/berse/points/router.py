"""Points endpoints: user balance and operator controls for the expiry job."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from berse.config import Settings, get_settings
from berse.database import get_session
from berse.db.models import User
from berse.dependencies import get_point_expiry_job, require_admin_key
from berse.exceptions import UserNotFoundError
from berse.points.expiry_config import ExpiryPolicy, is_exempt_from_expiry
from berse.points.expiry_job import PointExpiryJob
from berse.points.schemas import (
    ExpiryJobStatusResponse,
    ExpiryRunResponse,
    PointGrantResponse,
    PointsBalanceResponse,
)
from berse.points.service import get_available_points, list_active_grants

router = APIRouter(prefix="/api/v1", tags=["Points"])
admin_router = APIRouter(
    prefix="/api/v1/admin/point-expiry",
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
)


@router.get("/users/{user_id}/points", response_model=PointsBalanceResponse)
async def get_user_points(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Available balance and the active grants behind it, soonest expiry first."""
    if await db.get(User, user_id) is None:
        raise UserNotFoundError(user_id)

    available = await get_available_points(db, user_id)
    grants = await list_active_grants(db, user_id)
    return PointsBalanceResponse(
        user_id=user_id,
        available_points=available,
        exempt_from_expiry=is_exempt_from_expiry(available, ExpiryPolicy.from_settings(settings)),
        grants=[
            PointGrantResponse(
                id=g.id,
                amount=g.amount,
                action=g.action,
                description=g.description,
                created_at=g.created_at,
                expires_at=g.expires_at,
            )
            for g in grants
        ],
    )


@admin_router.get("/status", response_model=ExpiryJobStatusResponse)
async def point_expiry_status(job: PointExpiryJob = Depends(get_point_expiry_job)):
    return await job.status()


@admin_router.post("/run", response_model=ExpiryRunResponse)
async def run_point_expiry(job: PointExpiryJob = Depends(get_point_expiry_job)):
    """Run the expiry job now through the scheduled code path."""
    report = await job.run_now()
    return ExpiryRunResponse(
        skipped=report.skipped,
        warnings_sent=report.warnings_sent,
        batches=report.batches,
        records_expired=report.records_expired,
        points_expired=report.points_expired,
        duration_seconds=report.duration_seconds,
    )
