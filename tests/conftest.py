import dataclasses

import pytest

from kipk_chat.core.cache import ResponseCache
from kipk_chat.core.fallback import AIFallback
from kipk_chat.core.knowledge import default_knowledge_base
from kipk_chat.core.limiter import DailyRateLimiter
from kipk_chat.core.matcher import Matcher
from kipk_chat.core.metrics import metrics
from kipk_chat.core.orchestrator import ChatOrchestrator
from kipk_chat.core.settings import load_settings
from kipk_chat.core.store import MemoryStore


class FakeCompletion:
    def __init__(self, reply="Jawaban dari AI.", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def __call__(self, prompt: str):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class CountingMatcher(Matcher):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def resolve(self, query):
        self.calls += 1
        return super().resolve(query)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def knowledge():
    return default_knowledge_base()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def settings():
    return dataclasses.replace(
        load_settings(),
        provider="gemini",
        base_url="https://gemini.test/v1beta",
        model="gemini-2.0-flash",
        api_key="test-key",
        timeout_ms=1000,
    )


@pytest.fixture
def make_orchestrator(knowledge, store, completion):
    def _build(daily_limit=20, cache_store=None, cache_timeout_sec=2.0, complete=None, ai_timeout_sec=10.0):
        return ChatOrchestrator(
            limiter=DailyRateLimiter(store, daily_limit=daily_limit),
            cache=ResponseCache(cache_store if cache_store is not None else store),
            matcher=CountingMatcher(knowledge),
            fallback=AIFallback(complete or completion, knowledge, timeout_sec=ai_timeout_sec),
            cache_timeout_sec=cache_timeout_sec,
        )

    return _build
