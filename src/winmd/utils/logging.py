"""Logging setup for the winmd CLI and the assistant services.

Every record is kept in a rotating ``winmd.log``. The console handler writes to
stderr and stays at WARNING unless debug logging is on, so command output on
stdout is never interleaved with log lines.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["LOG_FILE_NAME", "setup_logging", "set_debug", "reset_logging"]

LOG_FILE_NAME = "winmd.log"
LOG_DIR_ENV = "WINMD_LOG_DIR"

_DEFAULT_LOG_DIR = Path.home() / ".winmd" / "logs"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 1_000_000
_BACKUP_COUNT = 3
# SDK loggers that are chatty at INFO; capped at WARNING in every mode.
_SDK_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "openai", "mcp", "google")

_file_handler: logging.handlers.RotatingFileHandler | None = None
_console_handler: logging.StreamHandler | None = None


def setup_logging(
    *,
    debug: bool = False,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Attach the winmd handlers to the root logger and return the log file path.

    A second call keeps the installed handlers (only switching debug on when
    asked) unless ``force`` is set, which rebuilds them for the new location.
    """

    global _file_handler, _console_handler
    if _file_handler is not None and not force:
        if debug:
            set_debug(True)
        return Path(_file_handler.baseFilename)

    reset_logging()
    target_dir = Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    root = logging.getLogger()
    _file_handler = logging.handlers.RotatingFileHandler(
        target_dir / LOG_FILE_NAME,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    _file_handler.setFormatter(formatter)
    root.addHandler(_file_handler)
    if console:
        _console_handler = logging.StreamHandler()
        _console_handler.setFormatter(formatter)
        root.addHandler(_console_handler)

    for name in _SDK_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    set_debug(debug)
    return Path(_file_handler.baseFilename)


def set_debug(enabled: bool) -> None:
    """Switch the installed handlers between normal and debug verbosity."""

    level = logging.DEBUG if enabled else logging.INFO
    logging.getLogger().setLevel(level)
    if _file_handler is not None:
        _file_handler.setLevel(level)
    if _console_handler is not None:
        _console_handler.setLevel(logging.DEBUG if enabled else logging.WARNING)


def reset_logging() -> None:
    """Detach and close the handlers installed by :func:`setup_logging`."""

    global _file_handler, _console_handler
    root = logging.getLogger()
    for handler in (_file_handler, _console_handler):
        if handler is None:
            continue
        root.removeHandler(handler)
        handler.close()
    _file_handler = None
    _console_handler = None
