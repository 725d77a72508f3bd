"""Daily point expiry job: expiry warnings, then batched expiry.

Run order within one execution:
1. Warnings for each configured offset (30/7/1 days). Best effort; a failing
   offset is logged and the others still run.
2. Expire past-due grants in fixed-size batches, sleeping between batches,
   until a batch expires nothing. A failing batch ends the run; the
   remainder is picked up by the next scheduled run.

The run guard is always released, including when an unexpected error is
re-raised to the scheduler.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from berse.config import Settings
from berse.points.expiry_config import DEFAULT_POLICY, ExpiryPolicy
from berse.points.run_guard import InProcessRunGuard, RedisRunGuard, RunGuard
from berse.points.service import ExpiryBatchResult, PointsExpiryStore


class ExpiryStore(Protocol):
    async def send_expiry_warnings(self, days_before: int) -> int: ...

    async def expire_points(self, batch_size: int) -> ExpiryBatchResult: ...


@dataclass
class ExpiryRunReport:
    skipped: bool = False
    started_at: datetime | None = None
    warnings_sent: dict[int, int] = field(default_factory=dict)
    batches: int = 0
    records_expired: int = 0
    points_expired: int = 0
    duration_seconds: float = 0.0

    @property
    def total_warnings(self) -> int:
        return sum(self.warnings_sent.values())


class SchedulerMarker:
    """Redis key the arq worker keeps alive while it schedules the expiry job.

    API processes build their own job instance, so they read this key to
    report whether a scheduler is running.
    """

    def __init__(self, redis: object, key: str = "scheduler:point_expiry", ttl_seconds: int = 900) -> None:
        self._redis = redis
        self._key = key
        self._ttl = ttl_seconds

    async def refresh(self, schedule: str) -> None:
        await self._redis.set(self._key, schedule, ex=self._ttl)  # type: ignore[attr-defined]

    async def clear(self) -> None:
        await self._redis.delete(self._key)  # type: ignore[attr-defined]

    async def is_set(self) -> bool:
        return bool(await self._redis.exists(self._key))  # type: ignore[attr-defined]


class PointExpiryJob:
    def __init__(
        self,
        store: ExpiryStore,
        guard: RunGuard | None = None,
        policy: ExpiryPolicy = DEFAULT_POLICY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Any = None,
        marker: SchedulerMarker | None = None,
    ) -> None:
        self._store = store
        self._guard = guard or InProcessRunGuard()
        self._policy = policy
        self._sleep = sleep
        self._log = logger or structlog.get_logger(__name__)
        self._marker = marker
        self.is_scheduled = False
        self.last_report: ExpiryRunReport | None = None

    @property
    def schedule(self) -> str:
        return self._policy.cron_schedule

    async def execute(self) -> ExpiryRunReport:
        """Run one expiry pass. Returns a skipped report if a run is already in progress."""
        if not await self._guard.acquire():
            self._log.warning("point_expiry_skipped", reason="already_running")
            return ExpiryRunReport(skipped=True)

        started = time.monotonic()
        report = ExpiryRunReport(started_at=datetime.now(timezone.utc))
        try:
            self._log.info("point_expiry_started", batch_size=self._policy.batch_size)

            await self._send_warnings(report)
            await self._expire_in_batches(report)

            report.duration_seconds = round(time.monotonic() - started, 2)
            if report.records_expired > 0:
                self._log.info(
                    "point_expiry_completed",
                    records_expired=report.records_expired,
                    points_expired=report.points_expired,
                    batches=report.batches,
                    duration_seconds=report.duration_seconds,
                )
            else:
                self._log.info("point_expiry_completed_nothing_to_expire", duration_seconds=report.duration_seconds)

            self.last_report = report
            return report
        except Exception:
            self._log.exception("point_expiry_failed")
            raise
        finally:
            await self._guard.release()

    async def run_now(self) -> ExpiryRunReport:
        """Manual trigger for operators; same path as the scheduled run."""
        self._log.info("point_expiry_manual_trigger")
        return await self.execute()

    async def status(self) -> dict[str, Any]:
        """Status of the scheduled job, including one scheduled by another process."""
        is_scheduled = self.is_scheduled
        if not is_scheduled and self._marker is not None:
            is_scheduled = await self._marker.is_set()

        last = self.last_report
        return {
            "is_scheduled": is_scheduled,
            "is_running": await self._guard.is_held(),
            "schedule": self.schedule,
            "last_run": None if last is None else {
                "started_at": last.started_at.isoformat() if last.started_at else None,
                "records_expired": last.records_expired,
                "points_expired": last.points_expired,
                "batches": last.batches,
                "warnings_sent": last.total_warnings,
                "duration_seconds": last.duration_seconds,
            },
        }

    async def _send_warnings(self, report: ExpiryRunReport) -> None:
        for days in self._policy.warning_days:
            try:
                report.warnings_sent[days] = await self._store.send_expiry_warnings(days)
            except Exception:
                self._log.exception("point_expiry_warnings_failed", days_before=days)

        if report.total_warnings > 0:
            self._log.info(
                "point_expiry_warnings_sent",
                total=report.total_warnings,
                **{f"days_{days}": count for days, count in report.warnings_sent.items()},
            )

    async def _expire_in_batches(self, report: ExpiryRunReport) -> None:
        batch_number = 1
        delay_seconds = self._policy.batch_delay_ms / 1000

        while True:
            try:
                result = await self._store.expire_points(self._policy.batch_size)
            except Exception:
                self._log.exception("point_expiry_batch_failed", batch=batch_number)
                return

            if result.expired == 0:
                return

            report.batches += 1
            report.records_expired += result.expired
            report.points_expired += result.points_expired
            self._log.info(
                "point_expiry_batch_done",
                batch=batch_number,
                records=result.expired,
                points=result.points_expired,
            )
            batch_number += 1
            await self._sleep(delay_seconds)


POINT_EXPIRY_LOCK_KEY = "lock:point_expiry"


def build_point_expiry_job(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: object | None = None,
) -> PointExpiryJob:
    """Wire the job from settings. The redis lock backend requires a Redis client.

    With a Redis client the job also reads the worker's scheduler marker.
    """
    policy = ExpiryPolicy.from_settings(settings)
    guard: RunGuard
    if settings.points_expiry_lock_backend == "redis":
        if redis is None:
            msg = "points_expiry_lock_backend=redis requires a Redis client"
            raise RuntimeError(msg)
        guard = RedisRunGuard(redis, POINT_EXPIRY_LOCK_KEY, settings.points_expiry_lock_ttl_seconds)
    else:
        guard = InProcessRunGuard()
    marker = SchedulerMarker(redis) if redis is not None else None
    return PointExpiryJob(PointsExpiryStore(session_factory, policy), guard=guard, policy=policy, marker=marker)
