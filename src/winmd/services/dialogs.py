"""Native dialog and file-manager adapters backed by PySide6.

The Qt imports are deferred until a dialog is requested so headless callers
(the CLI, the test-suite) never need a running ``QApplication``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Sequence

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from PySide6.QtWidgets import QWidget

__all__ = ["QtDialogProvider", "OPEN_FILTERS", "SAVE_FILTERS"]

LOGGER = logging.getLogger(__name__)

OPEN_FILTERS: tuple[str, ...] = (
    "Markdown & Text (*.md *.markdown *.txt)",
    "All Files (*)",
)
SAVE_FILTERS: tuple[str, ...] = (
    "Markdown (*.md)",
    "Text (*.txt)",
    "All Files (*)",
)


class QtDialogProvider:
    """Prompts for paths with ``QFileDialog`` and reveals files via ``QDesktopServices``."""

    __slots__ = ("_parent_provider", "_start_dir_resolver")

    def __init__(
        self,
        *,
        parent_provider: Callable[[], "QWidget | None"] | None = None,
        start_dir_resolver: Callable[[], Path | None] | None = None,
    ) -> None:
        self._parent_provider = parent_provider
        self._start_dir_resolver = start_dir_resolver

    def prompt_open_paths(self) -> List[Path]:
        """Return the files picked in a multi-select open dialog (empty when cancelled)."""

        try:
            from PySide6.QtWidgets import QFileDialog
        except ImportError as exc:  # pragma: no cover - depends on optional Qt install
            LOGGER.warning("File dialogs require PySide6: %s", exc)
            return []

        selected, _ = QFileDialog.getOpenFileNames(
            self._parent(),
            "Open",
            self._start_dir(),
            _join_filters(OPEN_FILTERS),
        )
        return [Path(item) for item in selected if item]

    def prompt_save_path(self, suggested_name: str) -> Path | None:
        """Return the chosen save location, or ``None`` when cancelled."""

        try:
            from PySide6.QtWidgets import QFileDialog
        except ImportError as exc:  # pragma: no cover - depends on optional Qt install
            LOGGER.warning("File dialogs require PySide6: %s", exc)
            return None

        start = self._start_dir()
        default_path = str(Path(start) / suggested_name) if start else suggested_name
        selected, _ = QFileDialog.getSaveFileName(
            self._parent(),
            "Save As",
            default_path,
            _join_filters(SAVE_FILTERS),
        )
        return Path(selected) if selected else None

    def reveal(self, path: Path) -> bool:
        """Open the folder containing ``path`` in the platform file manager."""

        try:
            from PySide6.QtCore import QUrl
            from PySide6.QtGui import QDesktopServices
        except ImportError as exc:  # pragma: no cover - depends on optional Qt install
            LOGGER.warning("Reveal-in-folder requires PySide6: %s", exc)
            return False

        target = Path(path).expanduser()
        folder = target if target.is_dir() else target.parent
        return bool(QDesktopServices.openUrl(QUrl.fromLocalFile(str(folder))))

    def _parent(self) -> "QWidget | None":
        return self._parent_provider() if self._parent_provider else None

    def _start_dir(self) -> str:
        if self._start_dir_resolver is None:
            return ""
        resolved = self._start_dir_resolver()
        return str(resolved) if resolved else ""


def _join_filters(filters: Sequence[str]) -> str:
    return ";;".join(filters)
