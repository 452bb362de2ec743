"""In-memory document tree with cycle-safe mutation helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from ..chat.message_model import ChatMessage
from .document_model import (
    DEFAULT_EXTENSION,
    DOCUMENT_EXTENSIONS,
    Document,
    DocumentKind,
    generate_document_id,
)

__all__ = ["DocumentStore", "StructuralError", "InvalidParentError"]

LOGGER = logging.getLogger(__name__)

UNTITLED_NAME = "Untitled"


class StructuralError(Exception):
    """Raised when a tree mutation would break the hierarchy invariants."""


class InvalidParentError(StructuralError):
    """Raised when a parent id does not reference an existing folder."""

    def __init__(self, parent_id: str | None) -> None:
        self.parent_id = parent_id
        super().__init__(f"Parent '{parent_id}' is not an existing folder")


def _normalize_path(path: Path | str | None) -> Path | None:
    if path is None:
        return None
    return Path(path).expanduser().resolve()


class DocumentStore:
    """Owns every document and derives hierarchy from ``parent_id`` links.

    Documents live in a flat, insertion-ordered mapping keyed by id. Nothing
    owns its children; the hierarchy is recomputed on demand, which keeps cycle
    detection a simple walk up the ancestor chain.
    """

    def __init__(self, documents: Iterable[Document] | None = None) -> None:
        self._documents: Dict[str, Document] = {}
        for document in documents or ():
            self._documents[document.id] = document

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def __contains__(self, document_id: object) -> bool:
        return document_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(list(self._documents.values()))

    def get(self, document_id: str | None) -> Document | None:
        if document_id is None:
            return None
        return self._documents.get(document_id)

    def require(self, document_id: str) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise KeyError(f"Unknown document_id: {document_id}")
        return document

    def ids(self) -> tuple[str, ...]:
        return tuple(self._documents)

    def file_count(self) -> int:
        return sum(1 for document in self._documents.values() if document.is_file)

    def find_by_path(self, path: Path | str) -> Document | None:
        normalized = _normalize_path(path)
        for document in self._documents.values():
            if document.path is not None and _normalize_path(document.path) == normalized:
                return document
        return None

    def children(self, parent_id: str | None) -> List[Document]:
        """Return direct children sorted folders-first, then by name (case-insensitive)."""

        items = [doc for doc in self._documents.values() if doc.parent_id == parent_id]
        # sorted() is stable, so insertion order breaks name ties.
        return sorted(items, key=lambda doc: (0 if doc.is_folder else 1, doc.name.casefold()))

    def ancestors(self, document_id: str) -> List[Document]:
        """Return the ancestor chain from the direct parent up to the root."""

        chain: List[Document] = []
        seen = {document_id}
        current = self.get(document_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                break
            seen.add(current.parent_id)
            parent = self.get(current.parent_id)
            if parent is None:
                break
            chain.append(parent)
            current = parent
        return chain

    def breadcrumbs(self, document_id: str) -> List[Document]:
        """Return the root-to-document chain used by the breadcrumb bar."""

        document = self.get(document_id)
        if document is None:
            return []
        return list(reversed(self.ancestors(document_id))) + [document]

    def visible_ids(self) -> List[str]:
        """Depth-first pre-order traversal descending only into expanded folders."""

        ordered: List[str] = []

        def _walk(parent_id: str | None) -> None:
            for child in self.children(parent_id):
                ordered.append(child.id)
                if child.is_folder and child.is_expanded:
                    _walk(child.id)

        _walk(None)
        return ordered

    def search(self, query: str) -> List[str]:
        """Return ids whose names contain ``query`` (case-insensitive), in insertion order."""

        needle = (query or "").casefold()
        return [doc.id for doc in self._documents.values() if needle in doc.name.casefold()]

    def is_ancestor(self, candidate_id: str, document_id: str | None) -> bool:
        """Return True when ``candidate_id`` is ``document_id`` or one of its ancestors."""

        current = document_id
        seen: set[str] = set()
        while current is not None and current not in seen:
            if current == candidate_id:
                return True
            seen.add(current)
            parent = self.get(current)
            current = parent.parent_id if parent is not None else None
        return False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(
        self,
        kind: DocumentKind | str,
        parent_id: str | None = None,
        *,
        name: str | None = None,
        content: str = "",
        path: Path | str | None = None,
    ) -> Document:
        """Create a document under ``parent_id`` (root when ``None``)."""

        resolved_kind = DocumentKind.coerce(kind)
        self._check_parent(parent_id)
        if name is None:
            name = self._default_name(resolved_kind)
        document = Document(
            id=self._fresh_id(),
            name=name,
            kind=resolved_kind,
            content=content if resolved_kind is DocumentKind.FILE else "",
            parent_id=parent_id,
            path=Path(path) if path is not None else None,
            is_expanded=resolved_kind is DocumentKind.FOLDER,
        )
        self._documents[document.id] = document
        LOGGER.debug("Created %s %s (%s) under %s", resolved_kind.value, document.id, name, parent_id)
        return document

    def add(self, document: Document) -> Document:
        """Insert an externally built document (imports, restores)."""

        if document.id in self._documents:
            raise StructuralError(f"Document '{document.id}' already exists")
        self._check_parent(document.parent_id)
        self._documents[document.id] = document
        return document

    def rename(self, document_id: str, new_name: str) -> bool:
        document = self.get(document_id)
        final_name = (new_name or "").strip()
        if document is None or not final_name:
            return False
        if document.is_file and not final_name.lower().endswith(DOCUMENT_EXTENSIONS):
            final_name += DEFAULT_EXTENSION
        document.name = final_name
        return True

    def move(self, document_ids: Iterable[str], target_parent_id: str | None) -> List[str]:
        """Reparent each id under ``target_parent_id``, skipping ids that would form a cycle."""

        if target_parent_id is not None:
            target = self.get(target_parent_id)
            if target is None or not target.is_folder:
                LOGGER.debug("Move rejected: target %s is not a folder", target_parent_id)
                return []
        moved: List[str] = []
        for document_id in dict.fromkeys(document_ids):
            document = self.get(document_id)
            if document is None or document_id == target_parent_id:
                continue
            if self.is_ancestor(document_id, target_parent_id):
                LOGGER.debug("Move of %s into %s skipped: cycle", document_id, target_parent_id)
                continue
            document.parent_id = target_parent_id
            moved.append(document_id)
        if moved and target_parent_id is not None:
            self.require(target_parent_id).is_expanded = True
        return moved

    def toggle_expand(self, document_id: str) -> bool:
        document = self.get(document_id)
        if document is None or not document.is_folder:
            return False
        document.is_expanded = not document.is_expanded
        return document.is_expanded

    def set_content(self, document_id: str, text: str) -> None:
        document = self.require(document_id)
        document.content = text
        document.unsaved = True
        document.touch()

    def ensure_visible(self, document_id: str) -> List[str]:
        """Expand every collapsed ancestor folder of ``document_id``."""

        expanded: List[str] = []
        for ancestor in self.ancestors(document_id):
            if ancestor.is_folder and not ancestor.is_expanded:
                ancestor.is_expanded = True
                expanded.append(ancestor.id)
        return expanded

    def mark_saved(self, document_id: str, path: Path | str) -> Document:
        document = self.require(document_id)
        resolved = Path(path)
        document.path = resolved
        document.name = resolved.name or document.name
        document.unsaved = False
        document.touch()
        return document

    def remove(self, document_id: str) -> List[str]:
        """Discard a document together with all of its descendants."""

        if document_id not in self._documents:
            return []
        doomed = [
            doc.id for doc in self._documents.values() if self.is_ancestor(document_id, doc.id)
        ]
        for doc_id in doomed:
            self._documents.pop(doc_id, None)
        LOGGER.debug("Removed documents %s", doomed)
        return doomed

    def set_chat_history(self, document_id: str, history: Sequence[ChatMessage]) -> bool:
        document = self.get(document_id)
        if document is None:
            return False
        document.chat_history = list(history)
        return True

    def append_message(self, document_id: str, message: ChatMessage) -> bool:
        """Append to a transcript; writes for discarded documents are dropped."""

        document = self.get(document_id)
        if document is None:
            LOGGER.debug("Dropping chat message for discarded document %s", document_id)
            return False
        document.chat_history.append(message)
        return True

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def serialize(self) -> List[Dict[str, Any]]:
        return [document.to_dict() for document in self._documents.values()]

    @classmethod
    def restore(cls, payload: Iterable[Mapping[str, Any]]) -> "DocumentStore":
        """Rebuild a store from persisted rows, repairing broken hierarchy links."""

        store = cls()
        for row in payload:
            if not isinstance(row, Mapping):
                continue
            document = Document.from_dict(row)
            if document.id in store._documents:
                LOGGER.warning("Skipping duplicate document id %s in saved state", document.id)
                continue
            store._documents[document.id] = document
        store._repair_hierarchy()
        return store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _check_parent(self, parent_id: str | None) -> None:
        if parent_id is None:
            return
        parent = self.get(parent_id)
        if parent is None or not parent.is_folder:
            raise InvalidParentError(parent_id)

    def _default_name(self, kind: DocumentKind) -> str:
        if kind is DocumentKind.FOLDER:
            return f"{UNTITLED_NAME} Folder"
        return f"{UNTITLED_NAME}-{self.file_count() + 1}{DEFAULT_EXTENSION}"

    def _fresh_id(self) -> str:
        candidate = generate_document_id()
        while candidate in self._documents:
            candidate = generate_document_id()
        return candidate

    def _repair_hierarchy(self) -> None:
        for document in self._documents.values():
            parent_id = document.parent_id
            if parent_id is None:
                continue
            parent = self._documents.get(parent_id)
            if parent is None or not parent.is_folder:
                LOGGER.warning("Reparenting %s to root: invalid parent %s", document.id, parent_id)
                document.parent_id = None
        for document in self._documents.values():
            if document.parent_id is not None and self.is_ancestor(document.id, document.parent_id):
                LOGGER.warning("Reparenting %s to root: cyclic parent chain", document.id)
                document.parent_id = None
