"""Badge catalog seed data. Point rewards are pegged to the activity point table:
register 5, attend event 10, host event 15, receive vouch 8, give trust moment 2."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from berse.badges.badge_types import BadgeType
from berse.db.models import Badge

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    {
        "type": BadgeType.CONNECTOR.value,
        "name": "Connector",
        "description": "You're good at connecting people",
        "criteria": "Connect 10+ friends on Berse App",
        "category": "Social",
        "tier": "Bronze",
        "points": 30,
        "criteria_config": {"type": "connections_count", "minConnections": 10, "connectionType": "ACCEPTED"},
        "image_url": "/badges/connector.png",
        "sort_order": 1,
    },
    {
        "type": BadgeType.HOST_MASTER.value,
        "name": "Host Master",
        "description": "You organize great events",
        "criteria": "Host 5+ events with good feedback",
        "category": "Events",
        "tier": "Silver",
        "points": 75,  # 5 hosted events x 15
        "criteria_config": {
            "type": "hosted_events",
            "minEvents": 5,
            "minAverageRating": 4.0,
            "requireCompletedEvents": True,
        },
        "image_url": "/badges/host-master.png",
        "sort_order": 2,
    },
    {
        "type": BadgeType.EXPLORER.value,
        "name": "Explorer",
        "description": "You love to travel",
        "criteria": "Visit and log 5+ countries in Travel Logbook",
        "category": "Travel",
        "tier": "Bronze",
        "points": 50,
        "criteria_config": {"type": "travel_countries", "minCountries": 5, "requiresLogbook": True},
        "image_url": "/badges/explorer.png",
        "sort_order": 3,
    },
    {
        "type": BadgeType.TRUSTED_MEMBER.value,
        "name": "Trusted Member",
        "description": "Highly trustworthy person",
        "criteria": "Reach 80+ trust score",
        "category": "Trust",
        "tier": "Gold",
        "points": 100,
        "criteria_config": {"type": "trust_score", "minScore": 80},
        "image_url": "/badges/trusted-member.png",
        "sort_order": 4,
    },
    {
        "type": BadgeType.COMMUNITY_BUILDER.value,
        "name": "Community Builder",
        "description": "Community leader",
        "criteria": "Create or help manage an active community",
        "category": "Community",
        "tier": "Silver",
        "points": 60,
        "criteria_config": {
            "type": "community_management",
            "options": [
                {"action": "created_community", "minMembers": 10},
                {"action": "moderator_role", "minActiveDays": 30},
            ],
        },
        "image_url": "/badges/community-builder.png",
        "sort_order": 5,
    },
    {
        "type": BadgeType.SERVICE_STAR.value,
        "name": "Service Star",
        "description": "Great service provider",
        "criteria": "Get 4.5+ star rating across 20+ services",
        "category": "Service",
        "tier": "Gold",
        "points": 120,
        "criteria_config": {"type": "service_rating", "minServices": 20, "minAverageRating": 4.5},
        "image_url": "/badges/service-star.png",
        "sort_order": 6,
    },
    {
        "type": BadgeType.EARLY_ADOPTER.value,
        "name": "Early Adopter",
        "description": "You were here early!",
        "criteria": "Join Berse in the first 1,000 users",
        "category": "Achievement",
        "tier": "Platinum",
        "points": 150,
        "criteria_config": {"type": "user_registration", "maxUserNumber": 1000},
        "image_url": "/badges/early-adopter.png",
        "sort_order": 7,
    },
    {
        "type": BadgeType.GLOBAL_CITIZEN.value,
        "name": "Global Citizen",
        "description": "Worldwide network",
        "criteria": "Have connections on 5+ continents",
        "category": "Travel",
        "tier": "Platinum",
        "points": 200,
        "criteria_config": {"type": "connections_geography", "minContinents": 5, "requiresLocationData": True},
        "image_url": "/badges/global-citizen.png",
        "sort_order": 8,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert missing badge definitions and refresh existing ones. Returns the number created."""
    result = await db.execute(select(Badge))
    existing = {badge.type: badge for badge in result.scalars()}

    created = 0
    for data in BADGE_SEED_DATA:
        badge = existing.get(data["type"])
        if badge is None:
            db.add(Badge(**data, is_active=True))
            created += 1
            continue
        for key, value in data.items():
            setattr(badge, key, value)

    await db.commit()
    if created:
        logger.info("Seeded %d badge definitions", created)
    return created
