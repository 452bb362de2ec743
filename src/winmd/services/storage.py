"""Storage I/O boundary for reading, writing and locating documents on disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Protocol, runtime_checkable

from ..utils.file_io import read_text, write_text
from .dialogs import QtDialogProvider

__all__ = ["StorageError", "FileSnapshot", "StorageBackend", "LocalStorage"]

LOGGER = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a document cannot be read from or written to external storage."""

    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause


@dataclass(slots=True, frozen=True)
class FileSnapshot:
    """Content of a file together with its modification time."""

    path: Path
    content: str
    last_modified: datetime


@runtime_checkable
class StorageBackend(Protocol):
    """Operations the document service needs from the host file system."""

    def read(self, path: Path) -> FileSnapshot:  # pragma: no cover - protocol
        ...

    def write(self, path: Path, content: str) -> None:  # pragma: no cover - protocol
        ...

    def open_dialog(self) -> List[Path]:  # pragma: no cover - protocol
        ...

    def save_dialog(self, suggested_name: str) -> Path | None:  # pragma: no cover - protocol
        ...

    def reveal(self, path: Path) -> None:  # pragma: no cover - protocol
        ...


class LocalStorage:
    """:class:`StorageBackend` over the local file system and Qt dialogs."""

    def __init__(self, dialogs: QtDialogProvider | None = None) -> None:
        self._dialogs = dialogs or QtDialogProvider()

    def read(self, path: Path) -> FileSnapshot:
        target = Path(path).expanduser()
        try:
            content = read_text(target)
            modified = target.stat().st_mtime
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Unable to read {target}: {exc}", path=target, cause=exc) from exc
        return FileSnapshot(
            path=target,
            content=content,
            last_modified=datetime.fromtimestamp(modified, tz=timezone.utc),
        )

    def write(self, path: Path, content: str) -> None:
        target = Path(path).expanduser()
        try:
            write_text(target, content)
        except OSError as exc:
            raise StorageError(f"Unable to write {target}: {exc}", path=target, cause=exc) from exc
        LOGGER.debug("Wrote %d characters to %s", len(content), target)

    def open_dialog(self) -> List[Path]:
        return self._dialogs.prompt_open_paths()

    def save_dialog(self, suggested_name: str) -> Path | None:
        return self._dialogs.prompt_save_path(suggested_name)

    def reveal(self, path: Path) -> None:
        if not self._dialogs.reveal(Path(path)):
            raise StorageError(f"Unable to reveal {path}", path=Path(path))
