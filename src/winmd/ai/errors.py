"""Error taxonomy for the AI assistant.

Backend adapters translate SDK and transport exceptions into these types so
the conversation orchestrator can map every failure onto a localized reply.
"""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    "AIError",
    "CredentialError",
    "TransportError",
    "ToolExecutionError",
    "MaxTurnsExceededError",
    "ErrorKind",
]


# -----------------------------------------------------------------------------
# Error kinds
# -----------------------------------------------------------------------------


class ErrorKind:
    """Machine-readable classification used when rendering assistant replies."""

    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_REJECTED = "credential_rejected"
    TRANSPORT = "transport"
    MAX_TURNS = "max_turns"
    GENERIC = "generic"


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class AIError(Exception):
    """Base class for every failure surfaced by the assistant pipeline."""

    kind: ClassVar[str] = ErrorKind.GENERIC

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class CredentialError(AIError):
    """Raised when an API key is missing or rejected by the provider."""

    MISSING: ClassVar[str] = "missing"
    REJECTED: ClassVar[str] = "rejected"

    def __init__(
        self,
        reason: str,
        message: str | None = None,
        *,
        provider: str = "",
        cause: Exception | None = None,
    ) -> None:
        if reason not in (self.MISSING, self.REJECTED):
            raise ValueError(f"Unknown credential error reason: {reason!r}")
        self.reason = reason
        self.provider = provider
        default = "Missing API Key" if reason == self.MISSING else "API key was rejected"
        super().__init__(message or default, cause=cause)

    @property
    def kind(self) -> str:  # type: ignore[override]
        if self.reason == self.MISSING:
            return ErrorKind.CREDENTIAL_MISSING
        return ErrorKind.CREDENTIAL_REJECTED


class TransportError(AIError):
    """Raised for network failures, timeouts and non-credential API errors."""

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, cause=cause)


class ToolExecutionError(AIError):
    """Raised when a tool server fails while executing a call."""

    def __init__(
        self,
        message: str,
        tool_name: str = "",
        cause: Exception | None = None,
    ) -> None:
        self.tool_name = tool_name
        super().__init__(message, cause=cause)


class MaxTurnsExceededError(AIError):
    """Raised when the model keeps requesting tools past the turn ceiling."""

    kind = ErrorKind.MAX_TURNS

    def __init__(self, max_turns: int) -> None:
        self.max_turns = max_turns
        super().__init__(f"Exceeded the maximum of {max_turns} model turns")
