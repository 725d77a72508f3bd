"""Per-badge criteria evaluators.

Each badge encodes a different aggregate, so each gets its own read-only
evaluator. ``CRITERIA_EVALUATORS`` dispatches by badge type.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import distinct, func, or_, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from berse.badges.badge_types import BadgeType
from berse.badges.continents import get_continent
from berse.db.models import (
    CONNECTION_ACCEPTED,
    EVENT_COMPLETED,
    Community,
    CommunityMember,
    ConnectionReview,
    Event,
    MarketplaceReview,
    TravelLogEntry,
    TrustMoment,
    User,
    UserConnection,
    UserLocation,
)

MIN_COUNTRIES_VISITED = 5
MIN_ACCEPTED_CONNECTIONS = 10
MIN_HOSTED_EVENTS = 5
MIN_HOSTED_EVENT_RATING = 4.0
MIN_TRUST_SCORE = 80
MIN_COMMUNITY_MEMBERS = 10
MIN_MODERATOR_DAYS = 30
MODERATOR_ROLES = ("MODERATOR", "ADMIN")
MIN_RATED_SERVICES = 20
MIN_SERVICE_RATING = 4.5
EARLY_ADOPTER_CUTOFF = 1000
MIN_CONTINENTS = 5

CriteriaEvaluator = Callable[[AsyncSession, int], Awaitable[bool]]


def _accepted_connections_of(user_id: int):
    return select(UserConnection.initiator_id, UserConnection.receiver_id).where(
        UserConnection.status == CONNECTION_ACCEPTED,
        or_(UserConnection.initiator_id == user_id, UserConnection.receiver_id == user_id),
    )


async def check_explorer(db: AsyncSession, user_id: int) -> bool:
    """5+ distinct countries in the travel log."""
    result = await db.execute(
        select(func.count(distinct(TravelLogEntry.country))).where(TravelLogEntry.user_id == user_id)
    )
    return result.scalar_one() >= MIN_COUNTRIES_VISITED


async def check_connector(db: AsyncSession, user_id: int) -> bool:
    """10+ accepted connections, in either direction."""
    result = await db.execute(select(func.count()).select_from(_accepted_connections_of(user_id).subquery()))
    return result.scalar_one() >= MIN_ACCEPTED_CONNECTIONS


async def check_host_master(db: AsyncSession, user_id: int) -> bool:
    """5+ completed hosted events and an average trust moment rating of 4.0+ on them.

    Moments without a rating are left out of the average.
    """
    hosted = select(Event.id).where(Event.host_id == user_id, Event.status == EVENT_COMPLETED)
    hosted_count = (await db.execute(select(func.count()).select_from(hosted.subquery()))).scalar_one()
    if hosted_count < MIN_HOSTED_EVENTS:
        return False

    result = await db.execute(
        select(func.avg(TrustMoment.rating), func.count(TrustMoment.id)).where(
            TrustMoment.event_id.in_(hosted),
            TrustMoment.rating.is_not(None),
        )
    )
    avg_rating, rated = result.one()
    if not rated:
        return False
    return float(avg_rating) >= MIN_HOSTED_EVENT_RATING


async def check_trusted_member(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(select(User.trust_score).where(User.id == user_id))
    score = result.scalar_one_or_none()
    return (score or 0) >= MIN_TRUST_SCORE


async def check_community_builder(db: AsyncSession, user_id: int) -> bool:
    """Created a community with 10+ members, or moderator/admin for 30+ days."""
    active_community = await db.execute(
        select(Community.id)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .where(Community.created_by_id == user_id)
        .group_by(Community.id)
        .having(func.count(CommunityMember.id) >= MIN_COMMUNITY_MEMBERS)
        .limit(1)
    )
    if active_community.first() is not None:
        return True

    tenure_cutoff = datetime.now(timezone.utc) - timedelta(days=MIN_MODERATOR_DAYS)
    moderator = await db.execute(
        select(CommunityMember.id)
        .where(
            CommunityMember.user_id == user_id,
            CommunityMember.role.in_(MODERATOR_ROLES),
            CommunityMember.joined_at <= tenure_cutoff,
        )
        .limit(1)
    )
    return moderator.first() is not None


async def check_service_star(db: AsyncSession, user_id: int) -> bool:
    """4.5+ average over 20+ ratings from marketplace reviews, connection reviews and trust moments."""
    ratings = union_all(
        select(MarketplaceReview.rating.label("rating")).where(MarketplaceReview.seller_id == user_id),
        select(ConnectionReview.rating.label("rating")).where(ConnectionReview.reviewee_id == user_id),
        select(TrustMoment.rating.label("rating")).where(
            TrustMoment.giver_id == user_id,
            TrustMoment.rating.is_not(None),
        ),
    ).subquery()

    result = await db.execute(select(func.avg(ratings.c.rating), func.count()).select_from(ratings))
    avg_rating, total = result.one()
    if total < MIN_RATED_SERVICES:
        return False
    return float(avg_rating) >= MIN_SERVICE_RATING


async def check_early_adopter(db: AsyncSession, user_id: int) -> bool:
    """Fewer than 1,000 users registered before this one."""
    result = await db.execute(select(User.created_at).where(User.id == user_id))
    created_at = result.scalar_one_or_none()
    if created_at is None:
        return False

    users_before = await db.execute(select(func.count(User.id)).where(User.created_at < created_at))
    return users_before.scalar_one() < EARLY_ADOPTER_CUTOFF


async def check_global_citizen(db: AsyncSession, user_id: int) -> bool:
    """Accepted connections residing on 5+ continents. Unmapped countries are ignored."""
    connections = await db.execute(_accepted_connections_of(user_id))
    connected_ids = {
        receiver_id if initiator_id == user_id else initiator_id
        for initiator_id, receiver_id in connections.all()
    }
    if not connected_ids:
        return False

    countries = await db.execute(
        select(UserLocation.country_of_residence).where(
            UserLocation.user_id.in_(connected_ids),
            UserLocation.country_of_residence.is_not(None),
        )
    )
    continents = {get_continent(country) for country in countries.scalars()}
    continents.discard(None)
    return len(continents) >= MIN_CONTINENTS


CRITERIA_EVALUATORS: dict[BadgeType, CriteriaEvaluator] = {
    BadgeType.EXPLORER: check_explorer,
    BadgeType.CONNECTOR: check_connector,
    BadgeType.HOST_MASTER: check_host_master,
    BadgeType.TRUSTED_MEMBER: check_trusted_member,
    BadgeType.COMMUNITY_BUILDER: check_community_builder,
    BadgeType.SERVICE_STAR: check_service_star,
    BadgeType.EARLY_ADOPTER: check_early_adopter,
    BadgeType.GLOBAL_CITIZEN: check_global_citizen,
}
