"""Tests for workspace session persistence."""

from __future__ import annotations

import json
from pathlib import Path

from winmd.chat.message_model import ChatMessage, MessageRole
from winmd.editor.workspace import DocumentWorkspace
from winmd.services.session_store import (
    WELCOME_DOCUMENT_ID,
    WELCOME_DOCUMENT_NAME,
    WorkspaceSessionStore,
)


def test_missing_state_creates_welcome_document(tmp_path: Path) -> None:
    workspace = WorkspaceSessionStore(tmp_path / "workspace.json").load()

    welcome = workspace.store.require(WELCOME_DOCUMENT_ID)
    assert welcome.name == WELCOME_DOCUMENT_NAME
    assert welcome.content.startswith("# Welcome to WinMD")
    assert workspace.tabs == (WELCOME_DOCUMENT_ID,)
    assert workspace.active_id == WELCOME_DOCUMENT_ID


def test_save_and_load_round_trip(tmp_path: Path, workspace: DocumentWorkspace, notes_tree: dict[str, str]) -> None:
    path = tmp_path / "state" / "workspace.json"
    workspace.activate(notes_tree["todo"])
    workspace.store.append_message(
        notes_tree["todo"], ChatMessage(role=MessageRole.USER, text="What is left?")
    )
    session = WorkspaceSessionStore(path)

    session.save(workspace)
    restored = session.load()

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert restored.tabs == (notes_tree["todo"],)
    assert restored.active_id == notes_tree["todo"]
    assert restored.store.require(notes_tree["todo"]).chat_history[0].text == "What is left?"
    assert restored.store.serialize() == workspace.store.serialize()


def test_bare_document_list_is_migrated(tmp_path: Path) -> None:
    path = tmp_path / "workspace.json"
    path.write_text(
        json.dumps([{"id": "a", "name": "legacy.md", "content": "old"}]), encoding="utf-8"
    )

    workspace = WorkspaceSessionStore(path).load()

    document = workspace.store.require("a")
    assert document.content == "old"
    assert document.chat_history == []
    assert workspace.tabs == ()
    assert workspace.active_id is None


def test_corrupt_state_falls_back_to_default(tmp_path: Path) -> None:
    path = tmp_path / "workspace.json"
    path.write_text("{not json", encoding="utf-8")

    workspace = WorkspaceSessionStore(path).load()

    assert workspace.store.ids() == (WELCOME_DOCUMENT_ID,)
