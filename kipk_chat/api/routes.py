import asyncio
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kipk_chat.api.schemas import ChatResponse, ErrorResponse
from kipk_chat.core.errors import UpstreamUnavailable
from kipk_chat.core.metrics import metrics
from kipk_chat.core.orchestrator import (
    STATUS_INVALID_INPUT,
    STATUS_RATE_LIMITED,
    ChatOrchestrator,
    build_orchestrator,
)
from kipk_chat.core.settings import SETTINGS

router = APIRouter()
logger = logging.getLogger(__name__)

orchestrator: ChatOrchestrator = build_orchestrator(SETTINGS)

MESSAGE_RATE_LIMITED = "Batas penggunaan harian tercapai, silakan coba lagi besok"
MESSAGE_INVALID_BODY = "Format permintaan tidak valid atau timeout"
MESSAGE_INVALID_QUERY = "Query tidak valid"
MESSAGE_INTERNAL = "Terjadi kesalahan internal"

_USER_AGENT_PREFIX = 20


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/metrics")
def metrics_endpoint():
    return metrics.snapshot()


@router.post("/api/chat")
async def chat(request: Request):
    identity = derive_identity(request)
    try:
        body = await _read_json_body(request)
        if not isinstance(body, dict):
            return _error_response(400, MESSAGE_INVALID_BODY, await orchestrator.limiter.peek(identity))

        outcome = await orchestrator.handle(body.get("query"), identity)
        if outcome.status == STATUS_INVALID_INPUT:
            return _error_response(400, MESSAGE_INVALID_QUERY, outcome.remaining_quota)
        if outcome.status == STATUS_RATE_LIMITED:
            return _error_response(429, MESSAGE_RATE_LIMITED, 0)
    except UpstreamUnavailable as exc:
        logger.error("chat quota store unavailable: %s", exc)
        return _error_response(500, MESSAGE_INTERNAL, 0)
    except Exception:
        logger.exception("chat request failed")
        return _error_response(500, MESSAGE_INTERNAL, 0)

    metrics.inc("chat_requests_total", {"status": "200"})
    payload = ChatResponse(response=outcome.answer, remaining_quota=outcome.remaining_quota)
    return JSONResponse(status_code=200, content=payload.model_dump(by_alias=True))


def derive_identity(request: Request) -> str:
    """Best-effort client key: forwarded address plus a user-agent prefix.

    Clients sharing an address and browser build collide; this is a quota key,
    not an authentication boundary.
    """
    address = (request.headers.get("x-forwarded-for") or "").strip()
    if not address and request.client is not None:
        address = request.client.host or ""
    user_agent = (request.headers.get("user-agent") or "").strip()
    return f"user:{address or 'unknown'}:{user_agent[:_USER_AGENT_PREFIX] or 'unknown'}"


async def _read_json_body(request: Request) -> object:
    timeout_sec = SETTINGS.body_timeout_ms / 1000.0
    try:
        raw = await asyncio.wait_for(request.body(), timeout=timeout_sec)
        return json.loads(raw)
    except (asyncio.TimeoutError, ValueError, RecursionError) as exc:
        logger.warning("chat body rejected: %s", exc.__class__.__name__)
        return None


def _error_response(status_code: int, message: str, remaining_quota: int) -> JSONResponse:
    metrics.inc("chat_requests_total", {"status": str(status_code)})
    payload = ErrorResponse(message=message, remaining_quota=remaining_quota)
    return JSONResponse(status_code=status_code, content=payload.model_dump(by_alias=True))
