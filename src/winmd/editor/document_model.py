"""Dataclasses describing workspace documents and their persisted shape."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..chat.message_model import ChatMessage

__all__ = [
    "DocumentKind",
    "Document",
    "DOCUMENT_EXTENSIONS",
    "DEFAULT_EXTENSION",
    "generate_document_id",
]

DOCUMENT_EXTENSIONS: tuple[str, ...] = (".md", ".markdown", ".txt")
DEFAULT_EXTENSION = ".md"


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def generate_document_id() -> str:
    return uuid.uuid4().hex


def _timestamp_to_millis(value: datetime) -> int:
    return round(value.timestamp() * 1000)


def _timestamp_from_payload(value: Any) -> datetime:
    if isinstance(value, bool):
        return _utcnow()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return _utcnow()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return _utcnow()


class DocumentKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"

    @classmethod
    def coerce(cls, value: Any) -> "DocumentKind":
        if isinstance(value, DocumentKind):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.FILE


@dataclass(slots=True)
class Document:
    """A file or folder node in the workspace tree."""

    id: str
    name: str
    kind: DocumentKind = DocumentKind.FILE
    content: str = ""
    parent_id: Optional[str] = None
    last_modified: datetime = field(default_factory=_utcnow)
    path: Optional[Path] = None
    is_expanded: bool = False
    chat_history: List[ChatMessage] = field(default_factory=list)
    unsaved: bool = False

    @property
    def is_folder(self) -> bool:
        return self.kind is DocumentKind.FOLDER

    @property
    def is_file(self) -> bool:
        return self.kind is DocumentKind.FILE

    def touch(self) -> None:
        self.last_modified = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the fixed field names of the workspace state file."""

        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "lastModified": _timestamp_to_millis(self.last_modified),
            "type": self.kind.value,
            "parentId": self.parent_id,
            "path": str(self.path) if self.path is not None else None,
            "isExpanded": self.is_expanded,
            "chatHistory": [message.to_dict() for message in self.chat_history],
            "unsaved": self.unsaved,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Document":
        """Build a document, filling fields missing from older payloads with defaults."""

        kind = DocumentKind.coerce(payload.get("type"))
        raw_path = payload.get("path")
        history = payload.get("chatHistory")
        messages: List[ChatMessage] = []
        if isinstance(history, list):
            messages = [ChatMessage.from_dict(item) for item in history if isinstance(item, Mapping)]
        content = payload.get("content")
        return cls(
            id=str(payload.get("id") or generate_document_id()),
            name=str(payload.get("name") or ""),
            kind=kind,
            content=content if isinstance(content, str) and kind is DocumentKind.FILE else "",
            parent_id=payload.get("parentId") or None,
            last_modified=_timestamp_from_payload(payload.get("lastModified")),
            path=Path(raw_path) if isinstance(raw_path, str) and raw_path else None,
            is_expanded=bool(payload.get("isExpanded", False)),
            chat_history=messages,
            unsaved=bool(payload.get("unsaved", False)),
        )
