from __future__ import annotations


class ChatError(Exception):
    """Base class for failures raised inside the chat pipeline."""


class UpstreamUnavailable(ChatError):
    """An external collaborator (key-value store, AI provider) failed or is unreachable."""

    def __init__(self, operation: str, reason: str = "") -> None:
        self.operation = operation
        self.reason = reason
        message = f"{operation} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UpstreamTimeout(UpstreamUnavailable):
    def __init__(self, operation: str, timeout_sec: float) -> None:
        self.timeout_sec = timeout_sec
        super().__init__(operation, f"timed out after {timeout_sec:g}s")


class MalformedResponse(UpstreamUnavailable):
    """The provider answered, but without a usable non-empty text payload."""
