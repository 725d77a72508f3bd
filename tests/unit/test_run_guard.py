"""Run guard tests: in-process flag and Redis SET NX lock."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from berse.points.run_guard import InProcessRunGuard, RedisRunGuard


class TestInProcessRunGuard:
    @pytest.mark.asyncio
    async def test_second_acquire_fails_until_release(self):
        guard = InProcessRunGuard()
        assert await guard.acquire() is True
        assert await guard.is_held() is True
        assert await guard.acquire() is False

        await guard.release()
        assert await guard.is_held() is False
        assert await guard.acquire() is True

    @pytest.mark.asyncio
    async def test_instances_are_independent(self):
        first, second = InProcessRunGuard(), InProcessRunGuard()
        assert await first.acquire() is True
        assert await second.acquire() is True


def _redis(release_result: int = 1) -> AsyncMock:
    redis = AsyncMock()
    redis.set.return_value = True
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=release_result))
    return redis


class TestRedisRunGuard:
    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_with_ttl(self):
        redis = _redis()
        guard = RedisRunGuard(redis, "lock:point_expiry", ttl_seconds=600)

        assert await guard.acquire() is True

        args, kwargs = redis.set.call_args
        assert args[0] == "lock:point_expiry"
        assert kwargs == {"nx": True, "ex": 600}

    @pytest.mark.asyncio
    async def test_acquire_fails_when_key_exists(self):
        redis = _redis()
        redis.set.return_value = None
        guard = RedisRunGuard(redis, "lock:point_expiry")

        assert await guard.acquire() is False

        await guard.release()
        redis.register_script.return_value.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_is_one_compare_and_delete_with_own_token(self):
        redis = _redis()
        guard = RedisRunGuard(redis, "lock:point_expiry")
        await guard.acquire()
        token = redis.set.call_args.args[1]

        await guard.release()

        script = redis.register_script.return_value
        script.assert_awaited_once_with(keys=["lock:point_expiry"], args=[token])
        redis.get.assert_not_awaited()
        redis.delete.assert_not_awaited()

    def test_release_script_only_deletes_matching_token(self):
        redis = _redis()
        RedisRunGuard(redis, "lock:point_expiry")

        source = redis.register_script.call_args.args[0]
        assert 'redis.call("get", KEYS[1]) == ARGV[1]' in source
        assert 'redis.call("del", KEYS[1])' in source

    @pytest.mark.asyncio
    async def test_release_twice_runs_script_once(self):
        redis = _redis(release_result=0)
        guard = RedisRunGuard(redis, "lock:point_expiry")
        await guard.acquire()

        await guard.release()
        await guard.release()

        redis.register_script.return_value.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_is_held_checks_key(self):
        redis = _redis()
        redis.exists.return_value = 1
        guard = RedisRunGuard(redis, "lock:point_expiry")
        assert await guard.is_held() is True

        redis.exists.return_value = 0
        assert await guard.is_held() is False
