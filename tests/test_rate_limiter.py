import asyncio
from datetime import UTC, datetime, timedelta

import fakeredis
from fakeredis import aioredis as fake_aioredis
import pytest

from kipk_chat.core.errors import UpstreamUnavailable
from kipk_chat.core.limiter import DailyRateLimiter
from kipk_chat.core.store import MemoryStore, RedisStore


class _Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class _Seconds:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _fake_redis_client(server=None):
    return fake_aioredis.FakeRedis(server=server or fakeredis.FakeServer(), decode_responses=True)


def _fake_redis_store() -> RedisStore:
    return RedisStore(_fake_redis_client())


def _down_redis_store() -> RedisStore:
    server = fakeredis.FakeServer()
    server.connected = False
    return RedisStore(_fake_redis_client(server))
def test_key_uses_utc_date():
    clock = _Clock(datetime(2026, 3, 1, 23, 30, tzinfo=UTC))
    limiter = DailyRateLimiter(MemoryStore(), clock=clock)
    assert limiter.key("user:1.2.3.4:ua") == "rate:user:1.2.3.4:ua:2026-03-01"


def test_nth_call_allowed_up_to_limit():
    limiter = DailyRateLimiter(MemoryStore(), daily_limit=20)

    async def _run():
        return [await limiter.check("user:a") for _ in range(22)]

    decisions = asyncio.run(_run())

    for n, decision in enumerate(decisions, start=1):
        assert decision.count == n
        assert decision.allowed is (n <= 20)
        assert decision.remaining == max(0, 20 - n)


def test_first_increment_sets_daily_expiry():
    store = MemoryStore()
    limiter = DailyRateLimiter(store, ttl_sec=86400)

    async def _run():
        await limiter.check("user:ttl")
        return await store.ttl(limiter.key("user:ttl"))

    ttl = asyncio.run(_run())
    assert 86000 < ttl <= 86400


def test_next_utc_day_starts_fresh_counter():
    clock = _Clock(datetime(2026, 3, 1, 12, 0, tzinfo=UTC))
    limiter = DailyRateLimiter(MemoryStore(), daily_limit=2, clock=clock)

    async def _run():
        for _ in range(3):
            await limiter.check("user:b")
        clock.now = clock.now + timedelta(days=1)
        return await limiter.check("user:b")

    decision = asyncio.run(_run())
    assert decision.count == 1
    assert decision.allowed is True
    assert decision.remaining == 1


def test_peek_does_not_consume_quota():
    limiter = DailyRateLimiter(MemoryStore(), daily_limit=5)

    async def _run():
        await limiter.check("user:c")
        first = await limiter.peek("user:c")
        second = await limiter.peek("user:c")
        return first, second, await limiter.peek("user:fresh")

    assert asyncio.run(_run()) == (4, 4, 5)


@pytest.mark.parametrize("store_factory", [MemoryStore, _fake_redis_store])
def test_concurrent_checks_lose_no_increments(store_factory):
    store = store_factory()
    limiter = DailyRateLimiter(store, daily_limit=20)

    async def _run():
        decisions = await asyncio.gather(*(limiter.check("user:burst") for _ in range(25)))
        return decisions, await store.get(limiter.key("user:burst"))

    decisions, stored = asyncio.run(_run())

    assert sum(1 for d in decisions if d.allowed) == 20
    assert sum(1 for d in decisions if not d.allowed) == 5
    assert int(stored) == 25


def test_redis_store_sets_expiry_on_first_increment():
    store = _fake_redis_store()
    limiter = DailyRateLimiter(store, ttl_sec=86400)

    async def _run():
        await limiter.check("user:redis")
        await limiter.check("user:redis")
        return await store.ttl(limiter.key("user:redis"))

    ttl = asyncio.run(_run())
    assert 0 < ttl <= 86400


def test_store_failure_propagates():
    limiter = DailyRateLimiter(_down_redis_store())

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(limiter.check("user:down"))
    with pytest.raises(UpstreamUnavailable):
        asyncio.run(limiter.peek("user:down"))


def test_redis_counter_left_without_expiry_gets_one():
    client = _fake_redis_client()
    limiter = DailyRateLimiter(RedisStore(client), ttl_sec=86400)
    key = limiter.key("user:stuck")

    async def _run():
        await client.set(key, "3")
        decision = await limiter.check("user:stuck")
        return decision, await client.ttl(key)

    decision, ttl = asyncio.run(_run())
    assert decision.count == 4
    assert 0 < ttl <= 86400


def test_memory_counter_left_without_expiry_gets_one():
    store = MemoryStore()
    limiter = DailyRateLimiter(store, ttl_sec=86400)
    key = limiter.key("user:stuck")

    async def _run():
        await store.set(key, "3")
        decision = await limiter.check("user:stuck")
        return decision, await store.ttl(key)

    decision, ttl = asyncio.run(_run())
    assert decision.count == 4
    assert 86000 < ttl <= 86400


def test_memory_store_drops_expired_keys_nobody_reads():
    seconds = _Seconds()
    store = MemoryStore(clock=seconds)
    limiter = DailyRateLimiter(store, ttl_sec=10)

    async def _run():
        for n in range(1000):
            await limiter.check(f"user:{n}")
        seconds.now += 10_000
        await limiter.check("user:late")

    asyncio.run(_run())
    assert len(store) == 1


def test_memory_store_sweep_keeps_live_keys():
    seconds = _Seconds()
    store = MemoryStore(clock=seconds)

    async def _run():
        await store.set("short", "1", ttl=5)
        await store.set("long", "1", ttl=500)
        await store.set("forever", "1")
        seconds.now += 60
        return store.sweep()

    assert asyncio.run(_run()) == 1
    assert len(store) == 2


def test_redis_store_aclose_closes_client():
    class _Client:
        closed = False

        async def aclose(self):
            self.closed = True

    client = _Client()
    asyncio.run(RedisStore(client).aclose())
    assert client.closed is True
