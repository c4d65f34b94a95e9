from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from kipk_chat.core.errors import UpstreamTimeout

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout_sec: float, operation: str) -> T:
    """Await ``awaitable`` for at most ``timeout_sec`` seconds.

    On expiry the pending call is cancelled and ``UpstreamTimeout`` is raised,
    so the caller never waits past the bound. Other exceptions pass through.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_sec)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeout(operation, timeout_sec) from exc
