"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest

from winmd.editor.document_model import DocumentKind
from winmd.editor.document_store import DocumentStore
from winmd.editor.workspace import DocumentWorkspace
from winmd.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    for name in list(os.environ):
        if name.startswith("WINMD_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WINMD_LOG_DIR", str(tmp_path / "logs"))
    yield
    logging_utils.reset_logging()


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def workspace(store: DocumentStore) -> DocumentWorkspace:
    return DocumentWorkspace(store)


@pytest.fixture
def notes_tree(workspace: DocumentWorkspace) -> dict[str, str]:
    """Root-level ``Notes`` folder holding ``todo.md`` and ``ideas.md`` plus a root ``readme.md``."""

    store = workspace.store
    notes = store.create(DocumentKind.FOLDER, name="Notes")
    todo = store.create(DocumentKind.FILE, notes.id, name="todo.md", content="- [ ] write tests")
    ideas = store.create(DocumentKind.FILE, notes.id, name="ideas.md", content="# Ideas")
    readme = store.create(DocumentKind.FILE, name="readme.md", content="# Readme")
    return {"notes": notes.id, "todo": todo.id, "ideas": ideas.id, "readme": readme.id}
