"""Chat transcript data models persisted alongside each document."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

__all__ = ["MessageRole", "ChatMessage", "GREETING_MESSAGE_ID"]

GREETING_MESSAGE_ID = "init"

# Transcripts written by older builds used "model" for assistant replies.
_LEGACY_ROLES = {"model": "assistant"}


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _generate_message_id() -> str:
    return uuid.uuid4().hex


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"

    @classmethod
    def coerce(cls, value: Any) -> "MessageRole":
        if isinstance(value, MessageRole):
            return value
        raw = str(value or "").strip().lower()
        raw = _LEGACY_ROLES.get(raw, raw)
        try:
            return cls(raw)
        except ValueError:
            return cls.SYSTEM


@dataclass(slots=True)
class ChatMessage:
    """Represents a row inside a document's chat transcript."""

    role: MessageRole
    text: str
    id: str = field(default_factory=_generate_message_id)
    created_at: datetime = field(default_factory=_utcnow)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None

    @property
    def is_greeting(self) -> bool:
        return self.id == GREETING_MESSAGE_ID

    @property
    def replayable(self) -> bool:
        """Whether the message is sent back to the model as conversation history."""

        if self.is_greeting:
            return False
        return self.role in (MessageRole.USER, MessageRole.ASSISTANT)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "createdAt": self.created_at.isoformat(),
        }
        if self.tool_calls:
            payload["toolCalls"] = [dict(call) for call in self.tool_calls]
        if self.tool_call_id:
            payload["toolCallId"] = self.tool_call_id
        if self.tool_name:
            payload["toolName"] = self.tool_name
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChatMessage":
        created_raw = payload.get("createdAt")
        created_at = _utcnow()
        if isinstance(created_raw, str):
            try:
                created_at = datetime.fromisoformat(created_raw)
            except ValueError:
                pass
        calls = payload.get("toolCalls")
        return cls(
            role=MessageRole.coerce(payload.get("role")),
            text=str(payload.get("text") or ""),
            id=str(payload.get("id") or _generate_message_id()),
            created_at=created_at,
            tool_calls=[dict(call) for call in calls if isinstance(call, Mapping)]
            if isinstance(calls, list)
            else [],
            tool_call_id=payload.get("toolCallId") or None,
            tool_name=payload.get("toolName") or None,
        )
