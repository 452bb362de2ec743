"""Async client wrapper for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence

from openai import APIStatusError, AsyncOpenAI

__all__ = ["AIClient", "ClientSettings", "normalize_base_url"]

LOGGER = logging.getLogger(__name__)

# Local servers ignore the Authorization header, but the SDK insists on a key.
_NO_KEY_PLACEHOLDER = "no-key"
_COMPLETIONS_SUFFIX = "/chat/completions"

ClientFactory = Callable[[str], AsyncOpenAI]


def normalize_base_url(base_url: str) -> str:
    """Strip trailing slashes and a pasted ``/chat/completions`` suffix."""

    cleaned = (base_url or "").strip().rstrip("/")
    if cleaned.endswith(_COMPLETIONS_SUFFIX):
        cleaned = cleaned[: -len(_COMPLETIONS_SUFFIX)].rstrip("/")
    return cleaned


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    request_timeout: float | None = 90.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Sends non-streaming chat completion requests.

    The base URL is normalised up front. When the server answers 404 and the
    base lacks a ``/v1`` segment, the request is repeated once against
    ``<base>/v1`` and that URL is kept for later requests.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = normalize_base_url(settings.base_url)
        self._client_factory = client_factory or self._build_client
        self._client = client or self._client_factory(self._base_url)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def base_url(self) -> str:
        return self._base_url

    async def create_chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        temperature: float | None = None,
        **extra_params: Any,
    ) -> Any:
        """Return the raw chat completion for ``messages``."""

        payload = self._build_chat_payload(
            messages=[dict(message) for message in messages],
            tools=tools,
            temperature=temperature,
            extra_params=extra_params,
        )
        LOGGER.debug(
            "Requesting chat completion via %s at %s with %s message(s)",
            self._settings.model,
            self._base_url,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)
        try:
            return await self._client.chat.completions.create(**payload)
        except APIStatusError as exc:
            if exc.status_code != 404 or "/v1" in self._base_url:
                raise
            fallback = f"{self._base_url}/v1"
            LOGGER.info("Chat endpoint returned 404; retrying with %s", fallback)
            await self.aclose()
            self._base_url = fallback
            self._client = self._client_factory(fallback)
            return await self._client.chat.completions.create(**payload)

    def _build_client(self, base_url: str) -> AsyncOpenAI:
        headers = dict(self._settings.default_headers) if self._settings.default_headers else None
        return AsyncOpenAI(
            api_key=self._settings.api_key or _NO_KEY_PLACEHOLDER,
            base_url=base_url,
            timeout=self._settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _build_chat_payload(
        self,
        *,
        messages: List[Dict[str, Any]],
        tools: Sequence[Mapping[str, Any]] | None,
        temperature: float | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": messages,
            "stream": False,
        }
        if tools:
            payload["tools"] = [dict(tool) for tool in tools]
            payload["tool_choice"] = "auto"
        if temperature is not None:
            payload["temperature"] = temperature
        if extra_params:
            payload.update(extra_params)
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result
