"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, cast

import httpx
import pytest
from openai import AsyncOpenAI, NotFoundError

from winmd.ai.client import AIClient, ClientSettings, normalize_base_url


def _status_error(status: int, url: str) -> NotFoundError:
    request = httpx.Request("POST", f"{url}/chat/completions")
    response = httpx.Response(status, request=request)
    return NotFoundError("Not Found", response=response, body=None)


class _FakeCompletions:
    def __init__(self, outcomes: List[Any]) -> None:
        self._outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **payload: Any) -> Any:
        self.calls.append(payload)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _FakeOpenAI:
    def __init__(self, base_url: str, outcomes: List[Any]) -> None:
        self.base_url = base_url
        self.completions = _FakeCompletions(outcomes)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("http://localhost:11434/v1/", "http://localhost:11434/v1"),
        ("http://localhost:1234/v1/chat/completions", "http://localhost:1234/v1"),
        ("  http://host//chat/completions/ ", "http://host"),
    ],
)
def test_normalize_base_url(raw: str, expected: str) -> None:
    assert normalize_base_url(raw) == expected


@pytest.mark.asyncio
async def test_create_chat_sends_non_streaming_payload() -> None:
    fake = _FakeOpenAI("http://local/v1", ["completion"])
    client = AIClient(
        ClientSettings(base_url="http://local/v1", api_key="test", model="llama3"),
        client=cast(AsyncOpenAI, fake),
    )

    result = await client.create_chat([{"role": "user", "content": "hi"}], temperature=0.3)

    assert result == "completion"
    [payload] = fake.completions.calls
    assert payload == {
        "model": "llama3",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": False,
        "temperature": 0.3,
    }


@pytest.mark.asyncio
async def test_create_chat_attaches_tools_with_auto_choice() -> None:
    fake = _FakeOpenAI("http://local/v1", ["completion"])
    client = AIClient(
        ClientSettings(base_url="http://local/v1", api_key="", model="llama3"),
        client=cast(AsyncOpenAI, fake),
    )
    tool = {"type": "function", "function": {"name": "search", "parameters": {}}}

    await client.create_chat([{"role": "user", "content": "hi"}], tools=[tool])

    payload = fake.completions.calls[0]
    assert payload["tools"] == [tool]
    assert payload["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_create_chat_requires_messages() -> None:
    client = AIClient(
        ClientSettings(base_url="http://local/v1", api_key="", model="llama3"),
        client=cast(AsyncOpenAI, _FakeOpenAI("http://local/v1", [])),
    )

    with pytest.raises(ValueError):
        await client.create_chat([])


@pytest.mark.asyncio
async def test_404_without_v1_retries_once_with_v1_suffix() -> None:
    built: List[_FakeOpenAI] = []

    def _factory(base_url: str) -> AsyncOpenAI:
        outcomes: List[Any] = (
            ["second"] if base_url.endswith("/v1") else [_status_error(404, base_url)]
        )
        fake = _FakeOpenAI(base_url, outcomes)
        built.append(fake)
        return cast(AsyncOpenAI, fake)

    client = AIClient(
        ClientSettings(base_url="http://localhost:1234/", api_key="", model="m"),
        client_factory=_factory,
    )

    result = await client.create_chat([{"role": "user", "content": "hi"}])

    assert result == "second"
    assert [fake.base_url for fake in built] == ["http://localhost:1234", "http://localhost:1234/v1"]
    assert built[0].closed is True
    assert client.base_url == "http://localhost:1234/v1"


@pytest.mark.asyncio
async def test_404_with_v1_is_not_retried() -> None:
    fake = _FakeOpenAI("http://local/v1", [_status_error(404, "http://local/v1")])
    client = AIClient(
        ClientSettings(base_url="http://local/v1", api_key="", model="m"),
        client=cast(AsyncOpenAI, fake),
    )

    with pytest.raises(NotFoundError):
        await client.create_chat([{"role": "user", "content": "hi"}])
    assert len(fake.completions.calls) == 1


@pytest.mark.asyncio
async def test_debug_logging_captures_prompt_payload(caplog: pytest.LogCaptureFixture) -> None:
    fake = _FakeOpenAI("http://local/v1", ["done"])
    client = AIClient(
        ClientSettings(base_url="http://local/v1", api_key="", model="debug", debug_logging=True),
        client=cast(AsyncOpenAI, fake),
    )

    with caplog.at_level("DEBUG", logger="winmd.ai.client"):
        await client.create_chat([{"role": "user", "content": "secret plan"}])

    assert any("AI prompt payload" in record.getMessage() for record in caplog.records)


def test_default_client_uses_placeholder_key_without_retries() -> None:
    client = AIClient(ClientSettings(base_url="http://local/v1/", api_key="", model="m"))

    underlying = client._client
    assert isinstance(underlying, AsyncOpenAI)
    assert underlying.api_key == "no-key"
    assert underlying.max_retries == 0
    assert str(underlying.base_url).rstrip("/") == "http://local/v1"
