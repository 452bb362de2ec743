"""Protocol-neutral message types and the backend adapter interface."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Protocol, Sequence, runtime_checkable

from ..tools.types import ToolDescriptor

__all__ = [
    "ModelMessage",
    "ToolCall",
    "BackendResponse",
    "ChatBackend",
    "parse_tool_arguments",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}


@dataclass(slots=True)
class ModelMessage:
    """One entry of the conversation sent to a backend.

    ``native`` optionally carries the adapter's own wire representation so a
    message produced by a backend can be replayed verbatim on the next turn.
    """

    role: str
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None
    native: Any = None


@dataclass(slots=True)
class BackendResponse:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    raw: Any = None


@runtime_checkable
class ChatBackend(Protocol):
    """Wire-protocol adapter used by the conversation orchestrator."""

    name: str

    async def send(
        self,
        system_context: str,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDescriptor],
    ) -> BackendResponse:  # pragma: no cover - protocol
        ...

    def extract_tool_calls(self, response: BackendResponse) -> List[ToolCall]:  # pragma: no cover - protocol
        ...

    def assistant_message(self, response: BackendResponse) -> ModelMessage:  # pragma: no cover - protocol
        ...

    def tool_result_message(self, call: ToolCall, result: str) -> ModelMessage:  # pragma: no cover - protocol
        ...

    async def aclose(self) -> None:  # pragma: no cover - protocol
        ...


def parse_tool_arguments(raw: Any, *, tool_name: str = "") -> Dict[str, Any]:
    """Decode tool-call arguments; anything that is not a JSON object becomes ``{}``."""

    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Undecodable arguments for tool %s: %r", tool_name or "?", raw[:200])
        return {}
    return decoded if isinstance(decoded, dict) else {}
