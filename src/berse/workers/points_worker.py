"""Point expiry arq worker: the daily scheduled expiry run.

Start the scheduler:   arq berse.workers.points_worker.WorkerSettings
Run once immediately:  python -m berse.workers.points_worker --now
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from berse.config import get_settings
from berse.database import close_db, get_session_factory, init_db
from berse.middleware.logging import setup_logging
from berse.points.expiry_job import PointExpiryJob, SchedulerMarker, build_point_expiry_job
from berse.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)

MARKER_REFRESH_MINUTES = set(range(0, 60, 5))


async def points_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis, build the scheduled expiry job and announce the scheduler."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    redis = await init_redis(settings.redis_url)

    job = build_point_expiry_job(settings, get_session_factory(), redis)
    job.is_scheduled = True
    ctx["point_expiry_job"] = job

    marker = SchedulerMarker(redis)
    await marker.refresh(job.schedule)
    ctx["scheduler_marker"] = marker
    logger.info("Point expiry worker started (schedule=%s)", job.schedule)


async def points_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    marker: SchedulerMarker | None = ctx.get("scheduler_marker")
    if marker is not None:
        await marker.clear()
    await close_redis()
    await close_db()
    logger.info("Point expiry worker shut down")


async def expire_points_task(ctx: dict) -> dict[str, Any]:  # type: ignore[type-arg]
    """Scheduled arq task: warnings, then batched expiry."""
    job: PointExpiryJob = ctx["point_expiry_job"]
    report = await job.execute()
    return {
        "skipped": report.skipped,
        "records_expired": report.records_expired,
        "points_expired": report.points_expired,
        "batches": report.batches,
        "warnings_sent": report.total_warnings,
    }


async def refresh_scheduler_marker(ctx: dict) -> None:  # type: ignore[type-arg]
    """Keep the scheduler marker alive; it lapses within its TTL if the worker dies."""
    job: PointExpiryJob = ctx["point_expiry_job"]
    await ctx["scheduler_marker"].refresh(job.schedule)


async def run_point_expiry_now() -> None:
    """Run one expiry pass outside the scheduler."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    redis = await init_redis(settings.redis_url)
    try:
        job = build_point_expiry_job(settings, get_session_factory(), redis)
        report = await job.run_now()
        logger.info(
            "Manual point expiry finished: skipped=%s, records=%d, points=%d",
            report.skipped, report.records_expired, report.points_expired,
        )
    finally:
        await close_redis()
        await close_db()


class WorkerSettings:
    """arq worker settings for the point expiry scheduler."""

    functions = [expire_points_task, refresh_scheduler_marker]
    cron_jobs = [
        cron(
            expire_points_task,
            name="point_expiry",
            hour=get_settings().points_expiry_hour,
            minute=get_settings().points_expiry_minute,
            run_at_startup=False,
        ),
        cron(refresh_scheduler_marker, name="point_expiry_scheduler_marker", minute=MARKER_REFRESH_MINUTES),
    ]
    on_startup = points_startup
    on_shutdown = points_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    # The marker refresh must not wait behind an hour-long expiry run
    max_jobs = 2
    job_timeout = 3600


def main() -> None:
    parser = argparse.ArgumentParser(description="Point expiry worker")
    parser.add_argument("--now", action="store_true", help="run one expiry pass immediately and exit")
    args = parser.parse_args()

    if args.now:
        asyncio.run(run_point_expiry_now())
        return

    from arq.worker import run_worker

    run_worker(WorkerSettings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
