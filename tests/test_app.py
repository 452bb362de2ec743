"""Tests covering the command-line bootstrap helpers."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, List, Sequence

import pytest

from winmd import app
from winmd.ai.backends import BackendResponse, ModelMessage, ToolCall
from winmd.ai.orchestration import orchestrator as orchestrator_module
from winmd.ai.tools import ToolDescriptor
from winmd.services.settings import Settings, SettingsStore


class _CannedBackend:
    name = "canned"

    def __init__(self, text: str) -> None:
        self._text = text
        self.requests: List[Sequence[ModelMessage]] = []

    async def send(self, system_context: str, messages: Sequence[ModelMessage], tools: Sequence[ToolDescriptor]) -> BackendResponse:
        self.requests.append(list(messages))
        return BackendResponse(text=self._text)

    def extract_tool_calls(self, response: BackendResponse) -> List[ToolCall]:
        return []

    def assistant_message(self, response: BackendResponse) -> ModelMessage:
        return ModelMessage(role="assistant", text=response.text)

    def tool_result_message(self, call: ToolCall, result: str) -> ModelMessage:
        return ModelMessage(role="tool", text=result)

    async def aclose(self) -> None:
        return None


def _run(*argv: str) -> tuple[int, str]:
    output = io.StringIO()
    code = app.main(list(argv), stream=output)
    return code, output.getvalue()


def test_coerce_cli_overrides_uses_field_types() -> None:
    overrides = app._coerce_cli_overrides(
        [
            "max_turns=4",
            "debug_logging=on",
            "temperature=0.5",
            "language= zh ",
            "window_geometry=1,2,3,4",
            'mcp_servers=[{"id": "fs", "command": "run"}]',
        ]
    )

    assert overrides == {
        "max_turns": 4,
        "debug_logging": True,
        "temperature": 0.5,
        "language": "zh",
        "window_geometry": "1,2,3,4",
        "mcp_servers": [{"id": "fs", "command": "run"}],
    }


@pytest.mark.parametrize(
    "entry",
    ["max_turns", "=3", "nope=1", "debug_logging=maybe", "max_turns=ten", "mcp_servers={}"],
)
def test_coerce_cli_overrides_rejects_bad_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        app._coerce_cli_overrides([entry])


def test_dump_settings_redacts_secrets(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).save(Settings(local_api_key="local-secret"))
    monkeypatch.setenv("WINMD_API_KEY", "abcdefgh")

    code, output = _run("--settings-path", str(settings_path), "--set", "language=zh", "--dump-settings")

    payload = json.loads(output)
    assert code == 0
    assert payload["settings"]["api_key"] == "ab****gh"
    assert payload["settings"]["local_api_key"] == "lo********et"
    assert payload["settings"]["language"] == "zh"
    assert payload["meta"]["path"] == str(settings_path)
    assert payload["meta"]["cli_overrides"] == ["language"]
    assert "WINMD_API_KEY" in payload["meta"]["environment_variables"]


def test_invalid_override_exits_with_usage_error(tmp_path: Path) -> None:
    code, output = _run("--settings-path", str(tmp_path / "s.json"), "--set", "bogus=1", "--dump-settings")

    assert code == 2
    assert output == ""


def test_ask_requires_file() -> None:
    with pytest.raises(SystemExit) as info:
        app.main(["--ask", "What?"])

    assert info.value.code == 2


def test_test_servers_reports_each_config(tmp_path: Path) -> None:
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).save(
        Settings(mcp_servers=[{"id": "fs", "name": "Files", "type": "stdio"}, "junk"])
    )

    code, output = _run("--settings-path", str(settings_path), "--test-servers")

    assert code == 1
    assert output == "Files: FAILED (Command is required)\n"


def test_test_servers_without_configs(tmp_path: Path) -> None:
    code, output = _run("--settings-path", str(tmp_path / "settings.json"), "--test-servers")

    assert code == 0
    assert output == "No tool servers configured.\n"


def test_summarize_prints_reply(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    backend = _CannedBackend("- key point")
    monkeypatch.setattr(orchestrator_module, "build_backend", lambda settings: backend)
    document = tmp_path / "plan.md"
    document.write_text("# Plan\n", encoding="utf-8")

    code, output = _run("--settings-path", str(tmp_path / "settings.json"), "--summarize", str(document))

    assert code == 0
    assert output == "- key point\n"
    assert backend.requests[0][0].text.endswith("# Plan\n")


def test_ask_prints_reply(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    backend = _CannedBackend("It is a plan.")
    monkeypatch.setattr(orchestrator_module, "build_backend", lambda settings: backend)
    document = tmp_path / "plan.md"
    document.write_text("# Plan\n", encoding="utf-8")

    code, output = _run(
        "--settings-path",
        str(tmp_path / "settings.json"),
        "--ask",
        "What is this?",
        "--file",
        str(document),
    )

    assert code == 0
    assert output == "It is a plan.\n"
    assert [m.text for m in backend.requests[0]] == ["What is this?"]


def test_missing_document_fails(tmp_path: Path) -> None:
    code, output = _run(
        "--settings-path", str(tmp_path / "settings.json"), "--summarize", str(tmp_path / "nope.md")
    )

    assert code == 1
    assert output == ""


def test_default_command_prints_workspace_outline(tmp_path: Path) -> None:
    code, output = _run(
        "--settings-path",
        str(tmp_path / "settings.json"),
        "--workspace-path",
        str(tmp_path / "workspace.json"),
    )

    assert code == 0
    assert output == "Welcome.md *\n"


def test_load_settings_falls_back_on_errors(tmp_path: Path) -> None:
    class _BrokenStore(SettingsStore):
        def load(self, *, overrides: Any = None) -> Settings:
            raise OSError("disk gone")

    settings = app.load_settings(store=_BrokenStore(tmp_path / "settings.json"))

    assert settings == Settings()


def test_server_configs_skip_malformed_entries() -> None:
    settings = Settings(mcp_servers=[{"id": "fs", "command": "run"}, {"command": "anon"}, "junk"])  # type: ignore[list-item]

    configs = app.server_configs(settings)

    assert [config.id for config in configs] == ["fs"]


def test_open_adds_tabs_and_persists_workspace(tmp_path: Path) -> None:
    workspace_path = tmp_path / "workspace.json"
    document = tmp_path / "notes.md"
    document.write_text("# Notes\n", encoding="utf-8")
    base = ("--settings-path", str(tmp_path / "settings.json"), "--workspace-path", str(workspace_path))

    code, output = _run(*base, "--open", str(document))
    again_code, again = _run(*base, "--open", str(document))
    outline_code, outline = _run(*base)

    assert code == 0
    assert output == "notes.md *\nWelcome.md +\n"
    assert workspace_path.exists()
    assert again_code == 0
    assert again == output
    assert outline_code == 0
    assert outline == output


def test_open_reports_unreadable_files(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    workspace_path = tmp_path / "workspace.json"

    code, output = _run(
        "--settings-path",
        str(tmp_path / "settings.json"),
        "--workspace-path",
        str(workspace_path),
        "--open",
        str(tmp_path / "missing.md"),
    )

    assert code == 1
    assert output == "Welcome.md *\n"
    assert "Failed to open missing.md" in capsys.readouterr().err
    assert not workspace_path.exists()
