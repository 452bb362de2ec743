"""Command-line bootstrap for the WinMD workspace."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.orchestration import ConversationOrchestrator, DocumentChatController
from .ai.tools import McpServerConfig, ToolRegistry
from .editor.document_model import DocumentKind
from .editor.document_store import DocumentStore
from .editor.workspace import DocumentWorkspace
from .services.document_service import DocumentService
from .services.session_store import WorkspaceSessionStore
from .services.settings import Settings, SettingsStore, redact_secret
from .services.storage import LocalStorage, StorageError
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_SECRET_FIELDS = ("api_key", "local_api_key")
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    log_path = logging_utils.setup_logging(debug=debug, force=force)
    _LOGGER.debug("Logging to %s (debug=%s)", log_path, debug)
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def server_configs(settings: Settings) -> List[McpServerConfig]:
    """Return the tool-server configs stored in ``settings``."""

    configs: List[McpServerConfig] = []
    for entry in settings.mcp_servers:
        if not isinstance(entry, Mapping):
            _LOGGER.warning("Ignoring malformed tool server entry: %r", entry)
            continue
        config = McpServerConfig.from_dict(entry)
        if not config.id:
            _LOGGER.warning("Ignoring tool server entry without an id: %r", entry)
            continue
        configs.append(config)
    return configs


def main(argv: Sequence[str] | None = None, *, stream: TextIO | None = None) -> int:
    """Entry point invoked by the ``winmd`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.ask is not None and args.file is None:
        parser.error("--ask requires --file")
    output = stream or sys.stdout

    debug = args.debug or _env_flag("WINMD_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("WINMD_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if settings.debug_logging and not debug:
        logging_utils.set_debug(True)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides, stream=output)
        return 0
    if args.test_servers:
        return asyncio.run(_test_servers(settings, output))
    if args.summarize is not None:
        return asyncio.run(_run_document_command(settings, Path(args.summarize), None, output))
    if args.ask is not None:
        return asyncio.run(_run_document_command(settings, Path(args.file), args.ask, output))

    session_store = WorkspaceSessionStore(args.workspace_path)
    if args.open:
        return _open_documents(session_store, args.open, output)

    _print_workspace(session_store.load(), output)
    return 0


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="winmd",
        description="Inspect the WinMD workspace, its configuration and its AI assistant.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.winmd/settings.json path.",
    )
    parser.add_argument(
        "--workspace-path",
        metavar="PATH",
        help="Override the default ~/.winmd/workspace.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings (with secrets redacted) and exit.",
    )
    actions.add_argument(
        "--test-servers",
        action="store_true",
        help="Test the connection to every configured tool server.",
    )
    actions.add_argument("--ask", metavar="QUESTION", help="Ask the assistant about --file.")
    actions.add_argument("--summarize", metavar="PATH", help="Summarize a Markdown file.")
    actions.add_argument(
        "--open",
        metavar="PATH",
        nargs="+",
        help="Open files as workspace tabs, save the workspace and print its outline.",
    )
    parser.add_argument("--file", metavar="PATH", help="Document used by --ask.")
    return parser


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


async def _test_servers(settings: Settings, stream: TextIO) -> int:
    configs = server_configs(settings)
    if not configs:
        stream.write("No tool servers configured.\n")
        return 0
    registry = ToolRegistry()
    failures = 0
    for config in configs:
        result = await registry.test_connection(config)
        if result.success:
            names = ", ".join(result.tool_names) or "-"
            stream.write(f"{config.display_name}: OK ({result.tool_count} tools: {names})\n")
        else:
            failures += 1
            stream.write(f"{config.display_name}: FAILED ({result.error})\n")
    return 1 if failures else 0


async def _run_document_command(
    settings: Settings,
    path: Path,
    question: str | None,
    stream: TextIO,
) -> int:
    try:
        snapshot = LocalStorage().read(path)
    except StorageError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    store = DocumentStore()
    document = store.create(
        DocumentKind.FILE, name=snapshot.path.name, content=snapshot.content, path=snapshot.path
    )
    registry = ToolRegistry()
    controller = DocumentChatController(store, ConversationOrchestrator(settings, registry))
    try:
        if question is None:
            result = await controller.summarize(document.id)
        else:
            for status in await registry.connect(server_configs(settings)):
                if not status.connected:
                    _LOGGER.warning("Tool server %s unavailable: %s", status.server_id, status.error)
            result = await controller.send(document.id, question)
    finally:
        await registry.aclose()
    if result is None:
        return 1
    stream.write(result.text.rstrip("\n") + "\n")
    return 0 if result.ok else 1


def _open_documents(session_store: WorkspaceSessionStore, paths: Sequence[str], stream: TextIO) -> int:
    workspace = session_store.load()
    failures: List[str] = []

    def _notify(message: str) -> None:
        failures.append(message)
        print(message, file=sys.stderr)

    service = DocumentService(workspace, LocalStorage(), notifier=_notify)
    if service.open_files(Path(path) for path in paths):
        session_store.save(workspace)
    _print_workspace(workspace, stream)
    return 1 if failures else 0


def _print_workspace(workspace: DocumentWorkspace, stream: TextIO) -> None:
    store = workspace.store
    open_tabs = set(workspace.tabs)

    def _walk(parent_id: str | None, depth: int) -> None:
        for document in store.children(parent_id):
            marker = "/" if document.is_folder else ""
            flags = ""
            if document.id == workspace.active_id:
                flags = " *"
            elif document.id in open_tabs:
                flags = " +"
            stream.write(f"{'  ' * depth}{document.name}{marker}{flags}\n")
            if document.is_folder:
                _walk(document.id, depth + 1)

    _walk(None, 0)


# ----------------------------------------------------------------------
# Settings helpers
# ----------------------------------------------------------------------


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is list:
        try:
            value = json.loads(normalized or "[]")
        except json.JSONDecodeError as exc:
            raise ValueError("List overrides must be valid JSON arrays") from exc
        if not isinstance(value, list):
            raise ValueError("List overrides must be valid JSON arrays")
        return value
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO,
) -> None:
    payload = asdict(settings)
    for name in _SECRET_FIELDS:
        value = payload.get(name, "")
        if isinstance(value, str):
            payload[name] = redact_secret(value)
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, stream, indent=2)
    stream.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("WINMD_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
