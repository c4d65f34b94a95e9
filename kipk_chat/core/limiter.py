from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable

from kipk_chat.core.store import KeyValueStore

DAILY_LIMIT = 20
RATE_TTL_SEC = 24 * 60 * 60


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    count: int


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DailyRateLimiter:
    """Per-identity request counter that rolls over at each UTC date boundary.

    The counter is only touched through the store's atomic ``incr_with_ttl``,
    which gives the key its expiry when the first request of the day creates
    it and re-applies one to any key found without it. Store errors propagate
    so the quota gate never opens on its own.
    """

    def __init__(
        self,
        store: KeyValueStore,
        daily_limit: int = DAILY_LIMIT,
        ttl_sec: int = RATE_TTL_SEC,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.daily_limit = max(1, daily_limit)
        self.ttl_sec = ttl_sec
        self._clock = clock

    def key(self, identity: str) -> str:
        today = self._clock().astimezone(UTC).date().isoformat()
        return f"rate:{identity}:{today}"

    async def check(self, identity: str) -> RateDecision:
        key = self.key(identity)
        count = await self.store.incr_with_ttl(key, self.ttl_sec)
        return RateDecision(
            allowed=count <= self.daily_limit,
            remaining=max(0, self.daily_limit - count),
            count=count,
        )

    async def peek(self, identity: str) -> int:
        raw = await self.store.get(self.key(identity))
        try:
            count = int(raw) if raw is not None else 0
        except ValueError:
            count = 0
        return max(0, self.daily_limit - count)
