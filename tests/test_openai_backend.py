"""Tests for the OpenAI-compatible backend adapter."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List, cast

import httpx
import pytest
from openai import APIConnectionError, AuthenticationError, InternalServerError

from winmd.ai.backends import ModelMessage, OpenAICompatibleBackend, ToolCall, build_backend
from winmd.ai.client import AIClient
from winmd.ai.errors import CredentialError, TransportError
from winmd.ai.tools.types import ToolDescriptor
from winmd.services.settings import Settings

_REQUEST = httpx.Request("POST", "http://local/v1/chat/completions")


class _StubClient:
    def __init__(self, outcomes: List[Any]) -> None:
        self._outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def create_chat(self, messages: Any, *, tools: Any = None, temperature: Any = None) -> Any:
        self.calls.append({"messages": list(messages), "tools": tools, "temperature": temperature})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


def _completion(content: str | None = None, tool_calls: List[Any] | None = None) -> Any:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _raw_call(call_id: str | None, name: str, arguments: str) -> Any:
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _backend(outcomes: List[Any]) -> tuple[OpenAICompatibleBackend, _StubClient]:
    stub = _StubClient(outcomes)
    return OpenAICompatibleBackend(cast(AIClient, stub), temperature=0.2), stub


_SEARCH = ToolDescriptor(
    name="search",
    description="Search notes",
    input_schema={"type": "object", "properties": {"q": {"type": "string"}}},
    server_id="fs",
)


@pytest.mark.asyncio
async def test_send_builds_flat_role_array_and_tool_definitions() -> None:
    backend, stub = _backend([_completion("Hello")])

    response = await backend.send(
        "system text",
        [ModelMessage(role="user", text="hi"), ModelMessage(role="assistant", text="hey")],
        [_SEARCH],
    )

    assert response.text == "Hello"
    assert response.tool_calls == []
    call = stub.calls[0]
    assert call["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hey"},
    ]
    assert call["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "search",
                "description": "Search notes",
                "parameters": {"type": "object", "properties": {"q": {"type": "string"}}},
            },
        }
    ]


@pytest.mark.asyncio
async def test_send_without_tools_passes_none() -> None:
    backend, stub = _backend([_completion("plain")])

    await backend.send("sys", [ModelMessage(role="user", text="hi")], [])

    assert stub.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_tool_calls_are_parsed_and_replayed() -> None:
    raw_calls = [
        _raw_call("call_1", "search", json.dumps({"q": "todo"})),
        _raw_call(None, "search", "{not json"),
    ]
    backend, _ = _backend([_completion(None, raw_calls)])

    response = await backend.send("sys", [ModelMessage(role="user", text="find")], [_SEARCH])
    calls = backend.extract_tool_calls(response)

    assert calls[0] == ToolCall(id="call_1", name="search", arguments={"q": "todo"})
    assert calls[1].id.startswith("call_")
    assert calls[1].arguments == {}

    assistant = backend.assistant_message(response)
    assert assistant.native["role"] == "assistant"
    assert assistant.native["content"] is None
    assert assistant.native["tool_calls"][0]["function"] == {
        "name": "search",
        "arguments": json.dumps({"q": "todo"}),
    }

    result = backend.tool_result_message(calls[0], "found 2")
    assert result.native == {
        "role": "tool",
        "tool_call_id": "call_1",
        "name": "search",
        "content": "found 2",
    }


@pytest.mark.asyncio
async def test_missing_choices_degrade_to_empty_text() -> None:
    backend, _ = _backend([SimpleNamespace(choices=[])])

    response = await backend.send("sys", [ModelMessage(role="user", text="hi")], [])

    assert response.text == ""
    assert response.tool_calls == []


@pytest.mark.asyncio
async def test_unauthorized_maps_to_rejected_credential() -> None:
    error = AuthenticationError(
        "bad key", response=httpx.Response(401, request=_REQUEST), body=None
    )
    backend, _ = _backend([error])

    with pytest.raises(CredentialError) as info:
        await backend.send("sys", [ModelMessage(role="user", text="hi")], [])

    assert info.value.reason == CredentialError.REJECTED


@pytest.mark.asyncio
async def test_server_and_connection_errors_map_to_transport() -> None:
    server_error = InternalServerError(
        "boom", response=httpx.Response(500, request=_REQUEST), body=None
    )
    backend, _ = _backend([server_error, APIConnectionError(request=_REQUEST)])

    with pytest.raises(TransportError) as first:
        await backend.send("sys", [ModelMessage(role="user", text="hi")], [])
    with pytest.raises(TransportError) as second:
        await backend.send("sys", [ModelMessage(role="user", text="hi")], [])

    assert first.value.status_code == 500
    assert str(first.value).startswith("Local AI Error: 500")
    assert str(second.value).startswith("Local AI Error:")


@pytest.mark.asyncio
async def test_aclose_closes_client() -> None:
    backend, stub = _backend([])

    await backend.aclose()

    assert stub.closed is True


def test_build_backend_dispatches_on_provider() -> None:
    local = build_backend(
        Settings(provider="local", base_url="http://localhost:1234", local_model="qwen")
    )
    gemini = build_backend(Settings(provider="gemini", api_key="k"))

    assert isinstance(local, OpenAICompatibleBackend)
    assert local.client.settings.model == "qwen"
    assert gemini.name == "gemini"
