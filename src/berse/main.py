"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from berse.badges.router import router as badges_router
from berse.badges.seed import seed_badges
from berse.config import get_settings
from berse.database import close_db, get_session_factory, init_db
from berse.health.router import router as health_router
from berse.middleware import setup_middleware
from berse.points.expiry_job import build_point_expiry_job
from berse.points.router import admin_router as point_expiry_admin_router
from berse.points.router import router as points_router
from berse.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    redis = await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_badges(db)
    except Exception:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    # The scheduled run lives in the arq worker; the API exposes status and manual runs
    app.state.point_expiry_job = build_point_expiry_job(settings, get_session_factory(), redis)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Berse Rewards API",
        description="Points ledger, point expiry and achievement badges for the Berse community platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(points_router)
    app.include_router(point_expiry_admin_router)
    app.include_router(badges_router)

    return app


app = create_app()
