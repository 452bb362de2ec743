"""Document file operations: open from disk, save, save-as and reveal."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List

from ..editor.document_model import Document, DocumentKind
from ..editor.workspace import DocumentWorkspace
from .storage import LocalStorage, StorageBackend, StorageError

__all__ = ["DocumentService", "Notifier", "NEW_DOCUMENT_CONTENT"]

LOGGER = logging.getLogger(__name__)

Notifier = Callable[[str], None]

NEW_DOCUMENT_CONTENT = "# New Document\n\nStart typing..."


def _log_notifier(message: str) -> None:
    LOGGER.warning("%s", message)


class DocumentService:
    """Bridges the workspace and a :class:`StorageBackend`.

    Storage failures never change workspace state; they are reported through
    ``notifier`` (defaults to a log record) and the operation returns its
    "nothing happened" value.
    """

    def __init__(
        self,
        workspace: DocumentWorkspace,
        storage: StorageBackend | None = None,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self._workspace = workspace
        self._storage = storage or LocalStorage()
        self._notify = notifier or _log_notifier

    @property
    def workspace(self) -> DocumentWorkspace:
        return self._workspace

    def new_file(self, parent_id: str | None = None) -> Document | None:
        return self._workspace.new_document(
            DocumentKind.FILE, parent_id, content=NEW_DOCUMENT_CONTENT
        )

    def new_folder(self, parent_id: str | None = None) -> Document | None:
        return self._workspace.new_document(DocumentKind.FOLDER, parent_id)

    def open_files(self, paths: Iterable[Path | str] | None = None) -> List[Document]:
        """Open ``paths`` (or prompt for them) and activate each resulting document.

        Files already present in the workspace are re-activated instead of
        being loaded twice.
        """

        targets = list(paths) if paths is not None else self._storage.open_dialog()
        store = self._workspace.store
        opened: List[Document] = []
        for raw in targets:
            path = Path(raw)
            existing = store.find_by_path(path)
            if existing is not None:
                self._workspace.activate(existing.id)
                opened.append(existing)
                continue
            try:
                snapshot = self._storage.read(path)
            except StorageError as exc:
                LOGGER.warning("Open failed for %s: %s", path, exc)
                self._notify(f"Failed to open {path.name}: {exc}")
                continue
            document = store.create(
                DocumentKind.FILE,
                name=snapshot.path.name,
                content=snapshot.content,
                path=snapshot.path,
            )
            document.last_modified = snapshot.last_modified
            self._workspace.activate(document.id)
            opened.append(document)
        return opened

    def save(self, document_id: str, *, save_as: bool = False) -> Path | None:
        """Write a document to its path, prompting for one when missing or on save-as."""

        document = self._workspace.store.require(document_id)
        if not document.is_file:
            return None
        target = document.path
        if target is None or save_as:
            target = self._storage.save_dialog(document.name)
            if target is None:
                LOGGER.debug("Save of %s cancelled", document_id)
                return None
        try:
            self._storage.write(target, document.content)
        except StorageError as exc:
            LOGGER.warning("Save failed for %s: %s", document_id, exc)
            self._notify(f"Failed to save {document.name}: {exc}")
            return None
        self._workspace.store.mark_saved(document_id, target)
        return Path(target)

    def save_active(self) -> Path | None:
        active = self._workspace.active_id
        if active is None:
            return None
        return self.save(active)

    def reveal(self, document_id: str) -> bool:
        document = self._workspace.store.require(document_id)
        if document.path is None:
            self._notify(f"{document.name} only exists in memory. Save it to disk first.")
            return False
        try:
            self._storage.reveal(document.path)
        except StorageError as exc:
            LOGGER.warning("Reveal failed for %s: %s", document.path, exc)
            self._notify(f"File path is: {document.path}")
            return False
        return True
