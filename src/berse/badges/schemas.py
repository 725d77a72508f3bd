"""Pydantic response models for badge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BadgeResponse(BaseModel):
    type: str
    name: str
    description: str
    criteria: str
    category: str
    tier: str
    points: int
    image_url: str | None = None


class AllBadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class EarnedBadgeResponse(BaseModel):
    type: str
    name: str
    earned_at: datetime


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    total_available: int
    total_earned: int


class BadgeCheckResponse(BaseModel):
    awarded: list[str]
