"""Points ledger: awarding, spending, expiry warnings and batched expiry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from berse.db.models import GRANT_ACTIVE, GRANT_EXPIRED, GRANT_SPENT, Badge, Notification, PointGrant, User
from berse.exceptions import InvalidPointAmountError, UserNotFoundError
from berse.points.expiry_config import (
    DEFAULT_POLICY,
    POINT_VALUES,
    ExpiryPolicy,
    calculate_expiry_date,
    is_exempt_from_expiry,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ExpiryBatchResult:
    expired: int
    points_expired: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def award_points(
    db: AsyncSession,
    user_id: int,
    action: str,
    description: str | None = None,
    amount: int | None = None,
    now: datetime | None = None,
    policy: ExpiryPolicy = DEFAULT_POLICY,
) -> PointGrant:
    """Create an active grant. Expiry is fixed from the user's trust level at award time.

    The caller owns the transaction; the grant is flushed, not committed.
    """
    points = POINT_VALUES.get(action, 0) if amount is None else amount
    if points <= 0:
        raise InvalidPointAmountError(f"Cannot award {points} points for {action}")

    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    awarded_at = now or _utcnow()
    grant = PointGrant(
        user_id=user_id,
        amount=points,
        action=action,
        description=description,
        status=GRANT_ACTIVE,
        created_at=awarded_at,
        expires_at=calculate_expiry_date(awarded_at, user.trust_level, action, policy),
    )
    db.add(grant)
    await db.flush()

    logger.info("points_awarded", user_id=user_id, action=action, points=points)
    return grant


async def get_available_points(db: AsyncSession, user_id: int) -> int:
    """Sum of the user's active grants."""
    result = await db.execute(
        select(func.coalesce(func.sum(PointGrant.amount), 0)).where(
            PointGrant.user_id == user_id,
            PointGrant.status == GRANT_ACTIVE,
        )
    )
    return int(result.scalar_one())


async def list_active_grants(db: AsyncSession, user_id: int) -> list[PointGrant]:
    result = await db.execute(
        select(PointGrant)
        .where(PointGrant.user_id == user_id, PointGrant.status == GRANT_ACTIVE)
        .order_by(PointGrant.expires_at.asc(), PointGrant.id.asc())
    )
    return list(result.scalars())


async def spend_points(db: AsyncSession, user_id: int, amount: int) -> int:
    """Consume ``amount`` points from the soonest-expiring active grants.

    A partially consumed grant is split: the consumed part is recorded as a
    spent grant and the remainder stays active with the same expiry.
    Returns the remaining balance. The caller commits.
    """
    if amount <= 0:
        raise InvalidPointAmountError(f"Cannot spend {amount} points")

    available = await get_available_points(db, user_id)
    if amount > available:
        raise InvalidPointAmountError(f"Balance {available} is insufficient to spend {amount}")

    remaining = amount
    for grant in await list_active_grants(db, user_id):
        if remaining == 0:
            break
        if grant.amount <= remaining:
            grant.status = GRANT_SPENT
            remaining -= grant.amount
            continue

        db.add(PointGrant(
            user_id=user_id,
            amount=remaining,
            action=grant.action,
            description=grant.description,
            status=GRANT_SPENT,
            created_at=grant.created_at,
            expires_at=grant.expires_at,
        ))
        grant.amount -= remaining
        remaining = 0

    await db.flush()
    return available - amount


async def send_expiry_warnings(
    db: AsyncSession,
    days_before: int,
    now: datetime | None = None,
    policy: ExpiryPolicy = DEFAULT_POLICY,
) -> int:
    """Notify users whose active points expire on the UTC day ``days_before`` days from now.

    One notification per user with the total expiring that day. Users below
    the exemption floor are skipped since their points will not expire.
    Returns the number of notifications sent.
    """
    now = now or _utcnow()
    window_start = (now + timedelta(days=days_before)).replace(hour=0, minute=0, second=0, microsecond=0)
    window_end = window_start + timedelta(days=1)

    result = await db.execute(
        select(PointGrant.user_id, func.sum(PointGrant.amount))
        .where(
            PointGrant.status == GRANT_ACTIVE,
            PointGrant.expires_at >= window_start,
            PointGrant.expires_at < window_end,
        )
        .group_by(PointGrant.user_id)
    )
    expiring_by_user = [(user_id, int(total)) for user_id, total in result.all()]

    sent = 0
    for user_id, points_expiring in expiring_by_user:
        if is_exempt_from_expiry(await get_available_points(db, user_id), policy):
            continue
        day_word = "day" if days_before == 1 else "days"
        db.add(Notification(
            user_id=user_id,
            type="points",
            subtype="points_expiring",
            title="Your points are expiring soon",
            description=f"{points_expiring} points will expire in {days_before} {day_word}.",
            is_read=False,
            created_at=now,
        ))
        sent += 1

    await db.commit()
    return sent


async def expire_points(
    db: AsyncSession,
    batch_size: int,
    now: datetime | None = None,
    policy: ExpiryPolicy = DEFAULT_POLICY,
) -> ExpiryBatchResult:
    """Mark up to ``batch_size`` past-due active grants as expired and commit.

    Each user's past-due grants are taken in expiry order and only while the
    balance held just before a grant expires is at or above the exemption
    floor. Once expiring would start from a balance below the floor, that
    user keeps the rest, whatever the batch size. Repeated calls converge
    to zero.
    """
    now = now or _utcnow()

    active_totals = (
        select(PointGrant.user_id, func.sum(PointGrant.amount).label("total"))
        .where(PointGrant.status == GRANT_ACTIVE)
        .group_by(PointGrant.user_id)
        .subquery()
    )
    due = (
        select(
            PointGrant.id,
            PointGrant.amount,
            active_totals.c.total,
            func.sum(PointGrant.amount)
            .over(
                partition_by=PointGrant.user_id,
                order_by=[PointGrant.expires_at, PointGrant.id],
            )
            .label("expired_through"),
        )
        .join(active_totals, active_totals.c.user_id == PointGrant.user_id)
        .where(PointGrant.status == GRANT_ACTIVE, PointGrant.expires_at <= now)
        .subquery()
    )
    # Balance just before this grant expires
    balance_before = due.c.total - due.c.expired_through + due.c.amount
    eligible_ids = select(due.c.id).where(balance_before >= policy.min_balance_exemption)

    # Row locks go on the outer query; PostgreSQL rejects FOR UPDATE next to window functions
    result = await db.execute(
        select(PointGrant.id, PointGrant.amount)
        .where(PointGrant.id.in_(eligible_ids))
        .order_by(PointGrant.expires_at.asc(), PointGrant.id.asc())
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )
    rows = result.all()
    if not rows:
        return ExpiryBatchResult(expired=0, points_expired=0)

    await db.execute(
        update(PointGrant)
        .where(PointGrant.id.in_([row.id for row in rows]))
        .values(status=GRANT_EXPIRED, expired_at=now)
    )
    await db.commit()

    return ExpiryBatchResult(expired=len(rows), points_expired=sum(row.amount for row in rows))


async def credit_badge_points(db: AsyncSession, user_id: int, badge: Badge) -> None:
    """Badge award hook: grant the badge's point value as a BADGE_EARNED grant."""
    if badge.points <= 0:
        return
    await award_points(
        db,
        user_id,
        "BADGE_EARNED",
        description=f"Earned badge: {badge.name}",
        amount=badge.points,
    )


class PointsExpiryStore:
    """Session-per-call adapter the expiry job drives."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: ExpiryPolicy = DEFAULT_POLICY,
    ) -> None:
        self._session_factory = session_factory
        self._policy = policy

    async def send_expiry_warnings(self, days_before: int) -> int:
        async with self._session_factory() as db:
            return await send_expiry_warnings(db, days_before, policy=self._policy)

    async def expire_points(self, batch_size: int) -> ExpiryBatchResult:
        async with self._session_factory() as db:
            return await expire_points(db, batch_size, policy=self._policy)
