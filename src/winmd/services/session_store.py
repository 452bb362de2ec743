"""Workspace session persistence.

Saves and restores the document tree together with the tab, selection and
anchor state in a single JSON file. Older payloads are migrated on load and
a welcome document is created when nothing has been saved yet.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from ..editor.document_model import Document, DocumentKind
from ..editor.document_store import DocumentStore
from ..editor.workspace import DocumentWorkspace
from ..utils.file_io import write_text

__all__ = ["WorkspaceSessionStore", "WELCOME_DOCUMENT_ID", "WELCOME_DOCUMENT_NAME"]

LOGGER = logging.getLogger(__name__)

_DEFAULT_STATE_PATH = Path.home() / ".winmd" / "workspace.json"
_STATE_VERSION = 1

WELCOME_DOCUMENT_ID = "welcome"
WELCOME_DOCUMENT_NAME = "Welcome.md"
_WELCOME_CONTENT = """# Welcome to WinMD

WinMD is a Markdown explorer and editor with a built-in AI assistant.

## Features
- **Tabs**: keep several documents open at once.
- **Folders**: organise documents into a tree and drag items between folders.
- **AI assistant**: chat with the active document, summarise it, or let the
  assistant call tools exposed by your configured MCP servers.
- **Native files**: open, edit and save Markdown files on disk.

## Getting started
1. **Open a file** from the sidebar to browse your disk.
2. **Create a folder** to organise your notes.
3. **Settings**: configure your Gemini API key or a local OpenAI-compatible
   endpoint.
"""


class WorkspaceSessionStore:
    """Reads and writes the persisted workspace state."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else _DEFAULT_STATE_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> DocumentWorkspace:
        """Return the saved workspace, or a fresh one holding the welcome document."""

        payload = self._read_payload()
        files = payload.get("files")
        if isinstance(files, list) and files:
            workspace = DocumentWorkspace.restore_state(payload)
            if len(workspace.store):
                LOGGER.debug(
                    "Workspace restored from %s: %d documents, %d tabs",
                    self._path,
                    len(workspace.store),
                    len(workspace.tabs),
                )
                return workspace
        return self.create_default()

    def save(self, workspace: DocumentWorkspace) -> Path:
        state = workspace.serialize_state()
        state["version"] = _STATE_VERSION
        write_text(self._path, json.dumps(state, indent=2, ensure_ascii=False))
        LOGGER.debug("Workspace saved to %s (%d documents)", self._path, len(workspace.store))
        return self._path

    @staticmethod
    def create_default() -> DocumentWorkspace:
        welcome = Document(
            id=WELCOME_DOCUMENT_ID,
            name=WELCOME_DOCUMENT_NAME,
            kind=DocumentKind.FILE,
            content=_WELCOME_CONTENT,
        )
        workspace = DocumentWorkspace(DocumentStore([welcome]))
        workspace.activate(welcome.id)
        return workspace

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Failed to load workspace state from %s: %s", self._path, exc)
            return {}
        if isinstance(payload, list):
            # Bare document lists predate the tab/selection keys.
            return {"files": payload}
        if not isinstance(payload, dict):
            LOGGER.warning("Workspace state %s has unexpected shape %s", self._path, type(payload))
            return {}
        return payload
