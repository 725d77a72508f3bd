"""HTTP API tests: health, points balance, badges, point expiry admin."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from berse.badges.seed import seed_badges
from berse.config import Settings
from berse.db.models import PointGrant
from berse.points.expiry_job import build_point_expiry_job

UTC = timezone.utc
ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


async def _grant(db, user_id: int, amount: int, expires_at: datetime) -> None:
    db.add(PointGrant(
        user_id=user_id,
        amount=amount,
        action="HOST_EVENT",
        created_at=expires_at - timedelta(days=365),
        expires_at=expires_at,
    ))
    await db.commit()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_version(self, client: AsyncClient) -> None:
        response = await client.get("/version")
        assert response.status_code == 200
        assert response.json()["version"] == "0.1.0"

    @pytest.mark.asyncio
    async def test_ready_degraded_without_redis(self, client: AsyncClient) -> None:
        response = await client.get("/ready")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["redis"].startswith("error:")

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert response.headers["X-Request-Id"] == "abc-123"


class TestPointsEndpoint:
    @pytest.mark.asyncio
    async def test_balance_and_grants(self, client: AsyncClient, db_session, make_user) -> None:
        user = await make_user()
        user_id = user.id
        now = datetime.now(UTC)
        await _grant(db_session, user_id, 80, now + timedelta(days=200))
        await _grant(db_session, user_id, 40, now + timedelta(days=20))

        response = await client.get(f"/api/v1/users/{user_id}/points")

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == user_id
        assert data["available_points"] == 120
        assert data["exempt_from_expiry"] is False
        assert [g["amount"] for g in data["grants"]] == [40, 80]

    @pytest.mark.asyncio
    async def test_small_balance_is_exempt(self, client: AsyncClient, db_session, make_user) -> None:
        user = await make_user()
        await _grant(db_session, user.id, 30, datetime.now(UTC) + timedelta(days=5))

        response = await client.get(f"/api/v1/users/{user.id}/points")

        assert response.json()["exempt_from_expiry"] is True

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/users/9999/points")
        assert response.status_code == 404
        assert response.json() == {"detail": "User not found: 9999"}


class TestBadgeEndpoints:
    @pytest.mark.asyncio
    async def test_list_badges(self, client: AsyncClient, seeded_db) -> None:
        response = await client.get("/api/v1/badges")

        assert response.status_code == 200
        badges = response.json()["badges"]
        assert len(badges) == 8
        assert badges[0]["type"] == "CONNECTOR"
        assert badges[-1]["type"] == "GLOBAL_CITIZEN"
        assert badges[-1]["points"] == 200

    @pytest.mark.asyncio
    async def test_check_awards_and_lists_badges(self, client: AsyncClient, seeded_db, make_user) -> None:
        user = await make_user(trust_score=88)
        user_id = user.id

        response = await client.post(f"/api/v1/users/{user_id}/badges/check")
        assert response.status_code == 200
        assert response.json() == {"awarded": ["Trusted Member", "Early Adopter"]}

        response = await client.get(f"/api/v1/users/{user_id}/badges")
        data = response.json()
        assert data["total_earned"] == 2
        assert data["total_available"] == 8
        assert {b["type"] for b in data["earned"]} == {"TRUSTED_MEMBER", "EARLY_ADOPTER"}

        response = await client.post(f"/api/v1/users/{user_id}/badges/check")
        assert response.json() == {"awarded": []}

    @pytest.mark.asyncio
    async def test_check_single_badge_type(self, client: AsyncClient, seeded_db, make_user) -> None:
        user = await make_user(trust_score=81)

        response = await client.post(
            f"/api/v1/users/{user.id}/badges/check", params={"badge_type": "trusted_member"}
        )

        assert response.status_code == 200
        assert response.json() == {"awarded": ["Trusted Member"]}

    @pytest.mark.asyncio
    async def test_check_unknown_badge_type(self, client: AsyncClient, seeded_db, make_user) -> None:
        user = await make_user()

        response = await client.post(f"/api/v1/users/{user.id}/badges/check", params={"badge_type": "ROCKSTAR"})

        assert response.status_code == 404
        assert response.json() == {"detail": "Unknown badge type: ROCKSTAR"}

    @pytest.mark.asyncio
    async def test_badge_points_credited_when_enabled(
        self, client: AsyncClient, seeded_db, make_user, test_settings: Settings
    ) -> None:
        test_settings.badge_points_enabled = True
        user = await make_user(trust_score=90)
        user_id = user.id

        await client.post(f"/api/v1/users/{user_id}/badges/check", params={"badge_type": "TRUSTED_MEMBER"})

        response = await client.get(f"/api/v1/users/{user_id}/points")
        assert response.json()["available_points"] == 100

    @pytest.mark.asyncio
    async def test_badge_points_not_credited_by_default(self, client: AsyncClient, seeded_db, make_user) -> None:
        user = await make_user(trust_score=90)
        user_id = user.id

        await client.post(f"/api/v1/users/{user_id}/badges/check", params={"badge_type": "TRUSTED_MEMBER"})

        response = await client.get(f"/api/v1/users/{user_id}/points")
        assert response.json()["available_points"] == 0


class TestPointExpiryAdmin:
    @pytest.mark.asyncio
    async def test_requires_admin_key(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/admin/point-expiry/status")
        assert response.status_code == 401

        response = await client.get("/api/v1/admin/point-expiry/status", headers={"X-Admin-Key": "wrong"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_disabled_without_configured_key(self, client: AsyncClient, test_settings: Settings) -> None:
        test_settings.admin_api_key = ""
        response = await client.get("/api/v1/admin/point-expiry/status", headers=ADMIN_HEADERS)
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_status(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/admin/point-expiry/status", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {
            "is_scheduled": False,
            "is_running": False,
            "schedule": "0 3 * * *",
            "last_run": None,
        }

    @pytest.mark.asyncio
    async def test_status_reflects_worker_schedule_and_lock(
        self, client: AsyncClient, api_app: FastAPI, session_factory, test_settings: Settings
    ) -> None:
        # Another process holds the scheduler marker and the run lock
        redis = AsyncMock()
        redis.exists.return_value = 1
        redis.set.return_value = None
        redis.register_script = MagicMock(return_value=AsyncMock())
        api_app.state.point_expiry_job = build_point_expiry_job(test_settings, session_factory, redis)

        response = await client.get("/api/v1/admin/point-expiry/status", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["is_scheduled"] is True
        assert data["is_running"] is True
        assert data["schedule"] == "0 3 * * *"
        redis.exists.assert_any_await("scheduler:point_expiry")
        redis.exists.assert_any_await("lock:point_expiry")

        response = await client.post("/api/v1/admin/point-expiry/run", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["skipped"] is True

    @pytest.mark.asyncio
    async def test_manual_run_expires_points(self, client: AsyncClient, db_session, make_user) -> None:
        user = await make_user()
        user_id = user.id
        await _grant(db_session, user_id, 150, datetime.now(UTC) - timedelta(days=2))
        await _grant(db_session, user_id, 10, datetime.now(UTC) + timedelta(days=100))

        response = await client.post("/api/v1/admin/point-expiry/run", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is False
        assert data["records_expired"] == 1
        assert data["points_expired"] == 150
        assert data["batches"] == 1

        response = await client.get(f"/api/v1/users/{user_id}/points")
        assert response.json()["available_points"] == 10

        response = await client.get("/api/v1/admin/point-expiry/status", headers=ADMIN_HEADERS)
        assert response.json()["last_run"]["records_expired"] == 1


@pytest.mark.asyncio
async def test_seed_is_idempotent_under_api_reads(client: AsyncClient, db_session) -> None:
    await seed_badges(db_session)
    await seed_badges(db_session)
    response = await client.get("/api/v1/badges")
    assert len(response.json()["badges"]) == 8
