"""Tests for the file IO and logging helpers."""

from __future__ import annotations

import codecs
import logging
import logging.handlers
from pathlib import Path

import pytest

from winmd.utils import logging as logging_utils
from winmd.utils.file_io import read_text, write_text


def test_read_text_strips_utf8_bom_and_normalizes_newlines(tmp_path: Path) -> None:
    target = tmp_path / "bom.md"
    target.write_bytes(codecs.BOM_UTF8 + "# Title\r\nline\rend".encode("utf-8"))

    assert read_text(target) == "# Title\nline\nend"


def test_read_text_detects_utf16(tmp_path: Path) -> None:
    target = tmp_path / "wide.md"
    target.write_bytes(codecs.BOM_UTF16_LE + "héllo".encode("utf-16-le"))

    assert read_text(target) == "héllo"


def test_read_text_falls_back_to_latin1(tmp_path: Path) -> None:
    target = tmp_path / "legacy.txt"
    target.write_bytes("café".encode("latin-1"))

    assert read_text(target, normalize_newlines=False).endswith("é")


def test_write_text_is_atomic_and_creates_parents(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "doc.md"

    write_text(target, "one\ntwo")
    write_text(target, "three")

    assert target.read_text(encoding="utf-8") == "three"
    assert [item.name for item in target.parent.iterdir()] == ["doc.md"]


def _flush() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_setup_logging_writes_to_log_dir(tmp_path: Path) -> None:
    log_path = logging_utils.setup_logging(log_dir=tmp_path, console=False)
    logging.getLogger("winmd.test").info("hello log")
    logging.getLogger("winmd.test").debug("hidden detail")
    _flush()

    text = log_path.read_text(encoding="utf-8")
    assert log_path == tmp_path / logging_utils.LOG_FILE_NAME
    assert "hello log" in text
    assert "hidden detail" not in text
    assert logging.getLogger("httpx").level == logging.WARNING


def test_console_stays_quiet_until_debug(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    logging_utils.setup_logging(log_dir=tmp_path)
    logger = logging.getLogger("winmd.test")

    logger.info("routine")
    logger.warning("careful")
    logging_utils.set_debug(True)
    logger.debug("deep dive")
    _flush()

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "routine" not in captured.err
    assert "careful" in captured.err
    assert "deep dive" in captured.err


def test_setup_logging_is_idempotent_unless_forced(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WINMD_LOG_DIR", str(tmp_path / "env-logs"))

    first = logging_utils.setup_logging(console=False)
    second = logging_utils.setup_logging(log_dir=tmp_path / "other", console=False, debug=True)
    forced = logging_utils.setup_logging(log_dir=tmp_path / "other", console=False, force=True)

    assert first == tmp_path / "env-logs" / "winmd.log"
    assert second == first
    assert forced == tmp_path / "other" / "winmd.log"
    assert logging.getLogger().level == logging.INFO


def test_reset_logging_leaves_foreign_handlers(tmp_path: Path) -> None:
    foreign = logging.NullHandler()
    root = logging.getLogger()
    root.addHandler(foreign)
    try:
        logging_utils.setup_logging(log_dir=tmp_path, console=False)
        logging_utils.reset_logging()

        assert foreign in root.handlers
        assert not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
    finally:
        root.removeHandler(foreign)
