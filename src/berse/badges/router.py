"""Badge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from berse.badges.badge_service import BadgeChecker, get_badge_by_type, list_active_badges, list_user_badges
from berse.badges.badge_types import BadgeType
from berse.badges.schemas import (
    AllBadgesResponse,
    BadgeCheckResponse,
    BadgeResponse,
    EarnedBadgeResponse,
    UserBadgesResponse,
)
from berse.config import Settings, get_settings
from berse.database import get_session
from berse.db.models import User
from berse.exceptions import UnknownBadgeError, UserNotFoundError
from berse.points.service import credit_badge_points

router = APIRouter(prefix="/api/v1", tags=["Badges"])


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_session)):
    badges = await list_active_badges(db)
    return AllBadgesResponse(badges=[
        BadgeResponse(
            type=b.type,
            name=b.name,
            description=b.description,
            criteria=b.criteria,
            category=b.category,
            tier=b.tier,
            points=b.points,
            image_url=b.image_url,
        )
        for b in badges
    ])


@router.get("/users/{user_id}/badges", response_model=UserBadgesResponse)
async def get_user_badges(user_id: int, db: AsyncSession = Depends(get_session)):
    if await db.get(User, user_id) is None:
        raise UserNotFoundError(user_id)

    earned = await list_user_badges(db, user_id)
    total_available = len(await list_active_badges(db))
    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(type=ub.badge.type, name=ub.badge.name, earned_at=ub.earned_at)
            for ub in earned
        ],
        total_available=total_available,
        total_earned=len(earned),
    )


@router.post("/users/{user_id}/badges/check", response_model=BadgeCheckResponse)
async def check_user_badges(
    user_id: int,
    badge_type: str | None = Query(default=None),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Evaluate badges after a qualifying action; optionally only one badge type."""
    if await db.get(User, user_id) is None:
        raise UserNotFoundError(user_id)

    checker = BadgeChecker(db, on_award=credit_badge_points if settings.badge_points_enabled else None)

    if badge_type is None:
        return BadgeCheckResponse(awarded=await checker.check_and_award_badges(user_id))

    try:
        parsed = BadgeType(badge_type.upper())
    except ValueError as exc:
        raise UnknownBadgeError(badge_type) from exc

    badge = await get_badge_by_type(db, parsed)
    if badge is None:
        raise UnknownBadgeError(badge_type)
    badge_name = badge.name

    awarded = await checker.check_specific_badge(user_id, parsed)
    return BadgeCheckResponse(awarded=[badge_name] if awarded else [])
