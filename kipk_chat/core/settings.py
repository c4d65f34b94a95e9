import os
from dataclasses import dataclass

_DEFAULT_BASE_URLS = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
    "openai_compat": "http://localhost:11434/v1",
}


def _split_origins(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    redis_url: str
    daily_limit: int
    rate_ttl_sec: int
    cache_ttl_sec: int
    cache_timeout_ms: int
    body_timeout_ms: int
    match_threshold: int
    knowledge_path: str
    provider: str
    base_url: str
    api_key: str
    model: str
    timeout_ms: int
    max_tokens: int
    temperature: float
    cors_origins: list[str]


def load_settings() -> Settings:
    provider = os.getenv("LLM_PROVIDER", "gemini").strip().lower()
    base_url = os.getenv("LLM_BASE_URL", "").strip() or _DEFAULT_BASE_URLS.get(provider, "")
    return Settings(
        redis_url=os.getenv("REDIS_URL", "").strip(),
        daily_limit=int(os.getenv("CHAT_DAILY_LIMIT", "20")),
        rate_ttl_sec=int(os.getenv("CHAT_RATE_TTL_SEC", str(24 * 60 * 60))),
        cache_ttl_sec=int(os.getenv("CHAT_CACHE_TTL_SEC", str(7 * 24 * 60 * 60))),
        cache_timeout_ms=int(os.getenv("CHAT_CACHE_TIMEOUT_MS", "2000")),
        body_timeout_ms=int(os.getenv("CHAT_BODY_TIMEOUT_MS", "2000")),
        match_threshold=int(os.getenv("CHAT_MATCH_THRESHOLD", "2")),
        knowledge_path=os.getenv("CHAT_KNOWLEDGE_PATH", "").strip(),
        provider=provider,
        base_url=base_url.rstrip("/"),
        api_key=os.getenv("LLM_API_KEY", ""),
        model=os.getenv("LLM_MODEL", "gemini-2.0-flash").strip() or "gemini-2.0-flash",
        timeout_ms=int(os.getenv("LLM_TIMEOUT_MS", "10000")),
        max_tokens=int(os.getenv("LLM_MAX_TOKENS", "512")),
        temperature=float(os.getenv("LLM_TEMPERATURE", "0.2")),
        cors_origins=_split_origins(os.getenv("CORS_ALLOW_ORIGINS", "")),
    )


SETTINGS = load_settings()
