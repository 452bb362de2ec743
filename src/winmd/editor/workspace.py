"""Workspace controller managing open tabs, the active document and selection."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .document_model import Document, DocumentKind
from .document_store import DocumentStore, StructuralError

__all__ = ["DocumentWorkspace", "ActiveDocumentListener"]

LOGGER = logging.getLogger(__name__)


class ActiveDocumentListener(Protocol):
    """Callback signature fired whenever the active document changes."""

    def __call__(self, document: Optional[Document]) -> None:  # pragma: no cover - protocol
        ...


class DocumentWorkspace:
    """Derives tab, selection and anchor state on top of a :class:`DocumentStore`.

    The state machine is ``(active_id, tabs, selection, anchor_id)``. Tabs are
    an ordered, duplicate-free subset of the store; the selection is
    independent of the tabs so the sidebar can highlight folders or closed
    files for bulk moves.
    """

    def __init__(self, store: DocumentStore | None = None) -> None:
        self._store = store or DocumentStore()
        self._tabs: List[str] = []
        self._active_id: str | None = None
        self._selection: List[str] = []
        self._anchor_id: str | None = None
        self._listeners: List[ActiveDocumentListener] = []

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def anchor_id(self) -> str | None:
        return self._anchor_id

    @property
    def tabs(self) -> tuple[str, ...]:
        return tuple(self._tabs)

    @property
    def selection(self) -> frozenset[str]:
        return frozenset(self._selection)

    def selected_ids(self) -> List[str]:
        """Return the selection in the order items were added."""

        return list(self._selection)

    def active_document(self) -> Document | None:
        return self._store.get(self._active_id)

    def is_open(self, document_id: str) -> bool:
        return document_id in self._tabs

    def visible_order(self, query: str = "") -> List[str]:
        """Return the sidebar ordering: search matches when filtering, else the tree."""

        if query:
            return self._store.search(query)
        return self._store.visible_ids()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_active_listener(self, listener: ActiveDocumentListener) -> None:
        self._listeners.append(listener)

    def remove_active_listener(self, listener: ActiveDocumentListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify_active_listeners(self) -> None:
        document = self.active_document()
        for listener in list(self._listeners):
            listener(document)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def new_document(
        self,
        kind: DocumentKind | str = DocumentKind.FILE,
        parent_id: str | None = None,
        **kwargs: Any,
    ) -> Document | None:
        """Create a document; new files are opened and activated immediately."""

        try:
            document = self._store.create(kind, parent_id, **kwargs)
        except StructuralError as exc:
            LOGGER.info("Document not created: %s", exc)
            return None
        if document.is_file:
            self.activate(document.id)
        return document

    def activate(self, document_id: str) -> None:
        self._store.require(document_id)
        if document_id not in self._tabs:
            self._tabs.append(document_id)
        self._selection = [document_id]
        self._anchor_id = document_id
        self._store.ensure_visible(document_id)
        self._set_active(document_id)

    def close_tab(self, document_id: str) -> None:
        if document_id in self._tabs:
            self._tabs.remove(document_id)
        if self._active_id == document_id:
            fallback = self._tabs[-1] if self._tabs else None
            self._selection = [fallback] if fallback is not None else []
            self._anchor_id = fallback
            self._set_active(fallback)
            return
        if document_id in self._selection:
            self._selection.remove(document_id)

    def click_tab(self, document_id: str, *, ctrl: bool = False, shift: bool = False) -> None:
        self._store.require(document_id)
        if document_id not in self._tabs:
            LOGGER.debug("Ignoring click on %s: no open tab", document_id)
            return
        self._apply_click(document_id, self._tabs, ctrl=ctrl, shift=shift)
        self._store.ensure_visible(document_id)
        self._set_active(document_id)

    def click_sidebar_item(
        self,
        document_id: str,
        *,
        ctrl: bool = False,
        shift: bool = False,
        query: str = "",
    ) -> None:
        document = self._store.require(document_id)
        order = self.visible_order(query)
        self._apply_click(document_id, order, ctrl=ctrl, shift=shift)
        if ctrl or shift or not document.is_file:
            return
        if document_id not in self._tabs:
            self._tabs.append(document_id)
        self._store.ensure_visible(document_id)
        self._set_active(document_id)

    def move_selection(self, target_parent_id: str | None) -> List[str]:
        """Move every selected document (drag-and-drop) into ``target_parent_id``."""

        return self._store.move(self._selection, target_parent_id)

    def discard(self, document_id: str) -> List[str]:
        """Close and permanently remove a document and its descendants."""

        removed = set(self._store.remove(document_id))
        if not removed:
            return []
        self._tabs = [tab for tab in self._tabs if tab not in removed]
        self._selection = [item for item in self._selection if item not in removed]
        if self._anchor_id in removed:
            self._anchor_id = None
        if self._active_id in removed:
            fallback = self._tabs[-1] if self._tabs else None
            if fallback is not None:
                self._selection = [fallback]
                self._anchor_id = fallback
            self._set_active(fallback)
        return [doc_id for doc_id in removed]

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def serialize_state(self) -> Dict[str, Any]:
        """Return a structured workspace snapshot for persistence layers."""

        return {
            "files": self._store.serialize(),
            "openFileIds": list(self._tabs),
            "activeFileId": self._active_id,
            "selectedIds": list(self._selection),
            "anchorId": self._anchor_id,
        }

    @classmethod
    def restore_state(cls, payload: Mapping[str, Any]) -> "DocumentWorkspace":
        files = payload.get("files")
        store = DocumentStore.restore(files if isinstance(files, list) else [])
        workspace = cls(store)
        workspace._tabs = _known_ids(store, payload.get("openFileIds"))
        workspace._selection = _known_ids(store, payload.get("selectedIds"))
        active = payload.get("activeFileId")
        if active in store:
            if active not in workspace._tabs:
                workspace._tabs.append(active)
            workspace._active_id = active
        elif workspace._tabs:
            workspace._active_id = workspace._tabs[-1]
        anchor = payload.get("anchorId")
        workspace._anchor_id = anchor if anchor in store else workspace._active_id
        if not workspace._selection and workspace._active_id is not None:
            workspace._selection = [workspace._active_id]
        return workspace

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply_click(
        self,
        document_id: str,
        order: Sequence[str],
        *,
        ctrl: bool,
        shift: bool,
    ) -> None:
        anchor = self._anchor_id
        if shift and anchor is not None and anchor in order and document_id in order:
            start, end = sorted((order.index(anchor), order.index(document_id)))
            span = list(order[start : end + 1])
            if ctrl:
                self._selection = list(dict.fromkeys([*self._selection, *span]))
            else:
                self._selection = span
            return
        if ctrl and not shift:
            if document_id in self._selection:
                self._selection.remove(document_id)
            else:
                self._selection.append(document_id)
        else:
            self._selection = [document_id]
        self._anchor_id = document_id

    def _set_active(self, document_id: str | None) -> None:
        if self._active_id == document_id:
            return
        self._active_id = document_id
        self._notify_active_listeners()


def _known_ids(store: DocumentStore, values: Any) -> List[str]:
    if not isinstance(values, Iterable) or isinstance(values, (str, bytes)):
        return []
    return [value for value in dict.fromkeys(values) if isinstance(value, str) and value in store]
