"""Badge checking and awarding with duplicate prevention."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from berse.badges.badge_types import BadgeType
from berse.badges.criteria import CRITERIA_EVALUATORS, CriteriaEvaluator
from berse.db.models import Badge, UserBadge

logger = logging.getLogger(__name__)

AwardHook = Callable[[AsyncSession, int, Badge], Awaitable[None]]


async def get_badge_by_type(db: AsyncSession, badge_type: BadgeType | str) -> Badge | None:
    """Fetch a badge definition by type tag."""
    result = await db.execute(select(Badge).where(Badge.type == BadgeType(badge_type).value))
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.first() is not None


async def list_active_badges(db: AsyncSession) -> list[Badge]:
    result = await db.execute(
        select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.sort_order, Badge.id)
    )
    return list(result.scalars())


async def list_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    result = await db.execute(
        select(UserBadge).where(UserBadge.user_id == user_id).order_by(UserBadge.earned_at.asc())
    )
    return list(result.scalars())


class BadgeChecker:
    """Evaluates badge criteria for one user and awards newly earned badges.

    ``on_award`` runs inside the award transaction after the insert; it is
    the extension point for crediting the badge's points.
    """

    def __init__(
        self,
        db: AsyncSession,
        on_award: AwardHook | None = None,
        evaluators: dict[BadgeType, CriteriaEvaluator] | None = None,
    ) -> None:
        self.db = db
        self.on_award = on_award
        self.evaluators = dict(CRITERIA_EVALUATORS if evaluators is None else evaluators)

    async def check_and_award_badges(self, user_id: int) -> list[str]:
        """Check every active badge. Returns names of badges awarded by this call."""
        awarded: list[str] = []
        # Snapshot before awarding: a failed award rolls back and expires loaded rows
        catalog = [(badge.type, badge.name) for badge in await list_active_badges(self.db)]
        for type_tag, name in catalog:
            try:
                badge_type = BadgeType(type_tag)
            except ValueError:
                logger.warning("Skipping badge with unknown type: %s", type_tag)
                continue

            if await self.check_badge_criteria(user_id, badge_type):
                if await self.award_badge(user_id, badge_type):
                    awarded.append(name)
        return awarded

    async def check_badge_criteria(self, user_id: int, badge_type: BadgeType) -> bool:
        """True if the user does not hold the badge yet and now meets its criteria."""
        badge = await get_badge_by_type(self.db, badge_type)
        if badge is None:
            return False

        if await has_badge(self.db, user_id, badge.id):
            return False

        evaluator = self.evaluators.get(badge_type)
        if evaluator is None:
            return False
        return await evaluator(self.db, user_id)

    async def award_badge(self, user_id: int, badge_type: BadgeType) -> bool:
        """Insert the award and commit. Any failure is logged and reported as not awarded."""
        try:
            badge = await get_badge_by_type(self.db, badge_type)
            if badge is None:
                return False

            # Re-check: another request may have awarded it since the criteria check
            if await has_badge(self.db, user_id, badge.id):
                return False

            badge_name = badge.name
            self.db.add(UserBadge(
                user_id=user_id,
                badge_id=badge.id,
                earned_at=datetime.now(timezone.utc),
            ))
            await self.db.flush()

            if self.on_award is not None:
                await self.on_award(self.db, user_id, badge)

            await self.db.commit()
        except Exception:
            logger.exception("Error awarding badge %s to user %s", badge_type.value, user_id)
            await self.db.rollback()
            return False

        logger.info("Awarded badge %s to user %s", badge_name, user_id)
        return True

    async def check_specific_badge(self, user_id: int, badge_type: BadgeType) -> bool:
        """Single-badge check-then-award, for re-evaluation after a specific action."""
        if await self.check_badge_criteria(user_id, badge_type):
            return await self.award_badge(user_id, badge_type)
        return False
