from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from kipk_chat.core.errors import UpstreamUnavailable
from kipk_chat.core.settings import Settings

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SEC = 60.0


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def incr_with_ttl(self, key: str, ttl: int) -> int: ...

    async def ttl(self, key: str) -> int: ...

    async def aclose(self) -> None: ...


class MemoryStore:
    """In-process store with per-key expiry, used without ``REDIS_URL`` and in tests.

    Every operation runs under one lock without awaiting, so ``incr_with_ttl``
    is atomic for concurrent coroutines and threads alike. Expired keys are
    dropped when read and swept from writes at most every ``sweep_interval_sec``.
    """

    def __init__(self, clock=time.time, sweep_interval_sec: float = SWEEP_INTERVAL_SEC) -> None:
        self._store: dict[str, tuple[float | None, str]] = {}
        self._lock = Lock()
        self._clock = clock
        self._sweep_interval_sec = sweep_interval_sec
        self._next_sweep = clock() + sweep_interval_sec

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _live(self, key: str, now: float) -> tuple[float | None, str] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, _ = entry
        if expires_at is not None and expires_at <= now:
            self._store.pop(key, None)
            return None
        return entry

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, (expires_at, _) in self._store.items() if expires_at is not None and expires_at <= now]
        for key in expired:
            del self._store[key]
        self._next_sweep = now + self._sweep_interval_sec
        return len(expired)

    def _maybe_sweep(self, now: float) -> None:
        if now >= self._next_sweep:
            self._sweep_locked(now)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[1] if entry else None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        now = self._clock()
        expires_at = now + ttl if ttl is not None else None
        with self._lock:
            self._maybe_sweep(now)
            self._store[key] = (expires_at, value)

    async def incr_with_ttl(self, key: str, ttl: int) -> int:
        now = self._clock()
        with self._lock:
            self._maybe_sweep(now)
            entry = self._live(key, now)
            if entry is None:
                expires_at, value = None, 1
            else:
                expires_at, value = entry[0], int(entry[1]) + 1
            if expires_at is None:
                expires_at = now + ttl
            self._store[key] = (expires_at, str(value))
            return value

    async def ttl(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            entry = self._live(key, now)
            if entry is None:
                return -2
            if entry[0] is None:
                return -1
            return max(0, int(entry[0] - now))

    async def aclose(self) -> None:
        return None


class RedisStore:
    def __init__(self, client: aioredis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisStore":
        return cls(aioredis.Redis.from_url(redis_url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as exc:
            raise UpstreamUnavailable("redis get", str(exc)) from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except (RedisError, OSError) as exc:
            raise UpstreamUnavailable("redis set", str(exc)) from exc

    async def incr_with_ttl(self, key: str, ttl: int) -> int:
        """INCR and TTL in one MULTI; any key left without expiry gets one here."""
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.ttl(key)
                count, remaining = await pipe.execute()
            if int(remaining) < 0:
                await self._redis.expire(key, ttl)
            return int(count)
        except (RedisError, OSError) as exc:
            raise UpstreamUnavailable("redis incr", str(exc)) from exc

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._redis.ttl(key))
        except (RedisError, OSError) as exc:
            raise UpstreamUnavailable("redis ttl", str(exc)) from exc

    async def aclose(self) -> None:
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as exc:
            logger.warning("redis close failed: %s", exc)


def build_store(settings: Settings) -> KeyValueStore:
    if settings.redis_url:
        return RedisStore.from_url(settings.redis_url)
    logger.warning("REDIS_URL is not set; rate limits and cache are kept in process memory")
    return MemoryStore()
