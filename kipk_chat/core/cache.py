from __future__ import annotations

import re

from kipk_chat.core.store import KeyValueStore

CACHE_TTL_SEC = 7 * 24 * 60 * 60

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    return _WHITESPACE_RE.sub(" ", (query or "").lower().strip())


def cache_key(query: str) -> str:
    return f"cache:{normalize_query(query)}"


class ResponseCache:
    """Final answers keyed by normalized query text; last write wins."""

    def __init__(self, store: KeyValueStore, ttl_sec: int = CACHE_TTL_SEC) -> None:
        self.store = store
        self.ttl_sec = ttl_sec

    async def get(self, query: str) -> str | None:
        value = await self.store.get(cache_key(query))
        if not value:
            return None
        return value

    async def put(self, query: str, answer: str) -> None:
        if not isinstance(answer, str) or not answer.strip():
            return
        await self.store.set(cache_key(query), answer, ttl=self.ttl_sec)
