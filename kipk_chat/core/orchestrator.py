from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass

from kipk_chat.core.cache import ResponseCache, normalize_query
from kipk_chat.core.errors import UpstreamTimeout, UpstreamUnavailable
from kipk_chat.core.fallback import AIFallback, build_provider
from kipk_chat.core.knowledge import get_knowledge_base
from kipk_chat.core.limiter import DailyRateLimiter
from kipk_chat.core.matcher import Matched, Matcher
from kipk_chat.core.metrics import metrics
from kipk_chat.core.settings import Settings
from kipk_chat.core.store import build_store
from kipk_chat.core.timeouts import bounded

logger = logging.getLogger(__name__)

CACHE_TIMEOUT_SEC = 2.0

STATUS_OK = "ok"
STATUS_RATE_LIMITED = "rate_limited"
STATUS_INVALID_INPUT = "invalid_input"


@dataclass(frozen=True)
class ChatOutcome:
    status: str
    remaining_quota: int
    answer: str = ""
    source: str = ""


class ChatOrchestrator:
    def __init__(
        self,
        limiter: DailyRateLimiter,
        cache: ResponseCache,
        matcher: Matcher,
        fallback: AIFallback,
        cache_timeout_sec: float = CACHE_TIMEOUT_SEC,
    ) -> None:
        self.limiter = limiter
        self.cache = cache
        self.matcher = matcher
        self.fallback = fallback
        self.cache_timeout_sec = cache_timeout_sec

    async def handle(self, query: object, identity: str) -> ChatOutcome:
        if not isinstance(query, str) or not query.strip():
            return ChatOutcome(status=STATUS_INVALID_INPUT, remaining_quota=await self.limiter.peek(identity))

        decision = await self.limiter.check(identity)
        if not decision.allowed:
            metrics.inc("chat_rate_limited_total")
            return ChatOutcome(status=STATUS_RATE_LIMITED, remaining_quota=0)

        cached = await self._cache_get(query)
        if cached is not None:
            return self._answered(identity, query, cached, "cache", decision.remaining)

        result = self.matcher.resolve(query)
        if isinstance(result, Matched):
            answer, source = result.text, "knowledge"
        else:
            answer, source = await self.fallback.generate(query), "ai"

        await self._cache_put(query, answer)
        return self._answered(identity, query, answer, source, decision.remaining)

    async def aclose(self) -> None:
        await self.limiter.store.aclose()
        if self.cache.store is not self.limiter.store:
            await self.cache.store.aclose()

    async def _cache_get(self, query: str) -> str | None:
        try:
            return await bounded(self.cache.get(query), self.cache_timeout_sec, "cache get")
        except UpstreamTimeout as exc:
            _cache_degraded("get", "timeout", exc)
        except UpstreamUnavailable as exc:
            _cache_degraded("get", "unavailable", exc)
        return None

    async def _cache_put(self, query: str, answer: str) -> None:
        try:
            await bounded(self.cache.put(query, answer), self.cache_timeout_sec, "cache put")
        except UpstreamTimeout as exc:
            _cache_degraded("put", "timeout", exc)
        except UpstreamUnavailable as exc:
            _cache_degraded("put", "unavailable", exc)

    def _answered(self, identity: str, query: str, answer: str, source: str, remaining: int) -> ChatOutcome:
        metrics.inc("chat_answer_source_total", {"source": source})
        logger.info(
            "chat_answer identity_hash=%s q_hash=%s source=%s remaining=%s",
            _short_hash(identity),
            _short_hash(normalize_query(query)),
            source,
            remaining,
        )
        return ChatOutcome(status=STATUS_OK, remaining_quota=remaining, answer=answer, source=source)


def _cache_degraded(op: str, reason: str, exc: Exception) -> None:
    metrics.inc("chat_cache_errors_total", {"op": op, "reason": reason})
    logger.warning("cache %s degraded reason=%s error=%s", op, reason, exc)


def _short_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def build_orchestrator(settings: Settings) -> ChatOrchestrator:
    store = build_store(settings)
    knowledge = get_knowledge_base(settings.knowledge_path)
    return ChatOrchestrator(
        limiter=DailyRateLimiter(store, daily_limit=settings.daily_limit, ttl_sec=settings.rate_ttl_sec),
        cache=ResponseCache(store, ttl_sec=settings.cache_ttl_sec),
        matcher=Matcher(knowledge, threshold=settings.match_threshold),
        fallback=AIFallback(build_provider(settings), knowledge, timeout_sec=settings.timeout_ms / 1000.0),
        cache_timeout_sec=settings.cache_timeout_ms / 1000.0,
    )
