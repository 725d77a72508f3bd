"""Mutual exclusion for scheduled jobs.

``InProcessRunGuard`` only protects against overlapping runs of one job
instance inside one process. ``RedisRunGuard`` extends that across the API and
worker processes through a ``SET NX EX`` lock.
"""

from __future__ import annotations

import uuid
from typing import Protocol


class RunGuard(Protocol):
    async def acquire(self) -> bool: ...

    async def release(self) -> None: ...

    async def is_held(self) -> bool: ...


class InProcessRunGuard:
    """Per-instance running flag. asyncio is single-threaded, so check-and-set cannot interleave."""

    def __init__(self) -> None:
        self._running = False

    async def acquire(self) -> bool:
        if self._running:
            return False
        self._running = True
        return True

    async def release(self) -> None:
        self._running = False

    async def is_held(self) -> bool:
        return self._running


# Compare-and-delete in one step so an expired lock re-taken by another worker is left alone
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisRunGuard:
    """Distributed lock keyed by job name. The TTL bounds how long a crashed holder blocks others."""

    def __init__(self, redis: object, key: str, ttl_seconds: int = 3600) -> None:
        self._redis = redis
        self._key = key
        self._ttl = ttl_seconds
        self._token: str | None = None
        self._release_script = redis.register_script(_RELEASE_SCRIPT)  # type: ignore[attr-defined]

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        acquired = await self._redis.set(self._key, token, nx=True, ex=self._ttl)  # type: ignore[attr-defined]
        if not acquired:
            return False
        self._token = token
        return True

    async def release(self) -> None:
        if self._token is None:
            return
        await self._release_script(keys=[self._key], args=[self._token])
        self._token = None

    async def is_held(self) -> bool:
        return bool(await self._redis.exists(self._key))  # type: ignore[attr-defined]
