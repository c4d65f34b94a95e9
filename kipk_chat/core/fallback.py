from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from kipk_chat.core.errors import MalformedResponse, UpstreamTimeout, UpstreamUnavailable
from kipk_chat.core.knowledge import KnowledgeBase
from kipk_chat.core.metrics import metrics
from kipk_chat.core.settings import Settings
from kipk_chat.core.timeouts import bounded

logger = logging.getLogger(__name__)

AI_TIMEOUT_SEC = 10.0

INSUFFICIENT_INFO_TEXT = "Mohon maaf, untuk pertanyaan tersebut sebaiknya langsung menghubungi pengurus forum."
APOLOGY_TEXT = (
    "Maaf, server sedang sibuk. Silakan coba lagi dalam beberapa saat atau hubungi pengurus forum "
    "melalui email: forumkipk@uniku.ac.id untuk informasi lebih lanjut."
)

Completion = Callable[[str], Awaitable[Any]]


def build_prompt(knowledge: KnowledgeBase, query: str) -> str:
    return (
        "Kamu adalah asisten untuk mahasiswa KIPK Universitas Kuningan.\n\n"
        f"{knowledge.as_prompt_text()}\n\n"
        f"Pertanyaan: {query}\n\n"
        "Berikan jawaban singkat dan informatif hanya berdasarkan informasi di atas. "
        f'Jika informasi tidak tersedia, jawab "{INSUFFICIENT_INFO_TEXT}"'
    )


def _gemini_extract_text(data: dict) -> str:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = [part.get("text") for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    return "".join(texts)


def _openai_extract_text(data: dict) -> str:
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0]
        if isinstance(choice, dict):
            message = choice.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]
            if isinstance(choice.get("text"), str):
                return choice["text"]
    return ""


class GeminiProvider:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport

    def _url(self) -> str:
        return f"{self.settings.base_url}/models/{self.settings.model}:generateContent"

    def _payload(self, prompt: str) -> dict:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.settings.temperature,
                "maxOutputTokens": self.settings.max_tokens,
            },
        }

    async def __call__(self, prompt: str) -> str:
        headers = {"content-type": "application/json"}
        if self.settings.api_key:
            headers["x-goog-api-key"] = self.settings.api_key
        async with httpx.AsyncClient(timeout=self.settings.timeout_ms / 1000.0, transport=self._transport) as client:
            response = await client.post(self._url(), json=self._payload(prompt), headers=headers)
            response.raise_for_status()
            data = response.json()
        return _gemini_extract_text(data if isinstance(data, dict) else {})


class OpenAICompatProvider:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport

    def _payload(self, prompt: str) -> dict:
        body = {
            "model": self.settings.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.settings.temperature,
            "stream": False,
        }
        if self.settings.max_tokens:
            body["max_tokens"] = self.settings.max_tokens
        return body

    async def __call__(self, prompt: str) -> str:
        headers = {"content-type": "application/json"}
        if self.settings.api_key:
            headers["authorization"] = f"Bearer {self.settings.api_key}"
        async with httpx.AsyncClient(timeout=self.settings.timeout_ms / 1000.0, transport=self._transport) as client:
            response = await client.post(
                f"{self.settings.base_url}/chat/completions", json=self._payload(prompt), headers=headers
            )
            response.raise_for_status()
            data = response.json()
        return _openai_extract_text(data if isinstance(data, dict) else {})


class DisabledProvider:
    async def __call__(self, prompt: str) -> str:
        raise UpstreamUnavailable("ai provider", "disabled by LLM_PROVIDER=off")


def build_provider(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> Completion:
    if settings.provider == "gemini":
        return GeminiProvider(settings, transport)
    if settings.provider == "openai_compat":
        return OpenAICompatProvider(settings, transport)
    if settings.provider == "off":
        return DisabledProvider()
    raise ValueError(f"unknown LLM_PROVIDER: {settings.provider!r}")


class AIFallback:
    """Answers unmatched questions through the generative provider.

    ``generate`` never raises and never returns blank text: timeouts, transport
    and HTTP errors, and payloads without text all degrade to ``APOLOGY_TEXT``.
    """

    def __init__(self, complete: Completion, knowledge: KnowledgeBase, timeout_sec: float = AI_TIMEOUT_SEC) -> None:
        self.complete = complete
        self.knowledge = knowledge
        self.timeout_sec = timeout_sec

    async def _complete_text(self, query: str) -> str:
        text = await bounded(self.complete(build_prompt(self.knowledge, query)), self.timeout_sec, "ai generate")
        if not isinstance(text, str) or not text.strip():
            raise MalformedResponse("ai generate", "empty or non-text payload")
        return text.strip()

    async def generate(self, query: str) -> str:
        started = time.perf_counter()
        try:
            answer = await self._complete_text(query)
        except UpstreamTimeout as exc:
            _record_failure("timeout", exc)
            return APOLOGY_TEXT
        except MalformedResponse as exc:
            _record_failure("malformed", exc)
            return APOLOGY_TEXT
        except httpx.HTTPStatusError as exc:
            _record_failure(f"http_{exc.response.status_code}", exc)
            return APOLOGY_TEXT
        except Exception as exc:
            _record_failure("provider_error", exc)
            return APOLOGY_TEXT
        finally:
            metrics.observe_ms("chat_fallback_latency_ms", (time.perf_counter() - started) * 1000.0)
        return answer


def _record_failure(reason: str, exc: Exception) -> None:
    metrics.inc("chat_fallback_errors_total", {"reason": reason})
    logger.warning("ai fallback failed reason=%s error=%s", reason, exc)
