"""Model backend adapters and provider dispatch."""

from __future__ import annotations

from typing import Callable, Dict

from ...services.settings import Settings, normalize_provider
from ..client import AIClient, ClientSettings
from .base import BackendResponse, ChatBackend, ModelMessage, ToolCall, parse_tool_arguments
from .gemini_backend import GeminiBackend
from .openai_backend import OpenAICompatibleBackend

__all__ = [
    "BackendResponse",
    "ChatBackend",
    "GeminiBackend",
    "ModelMessage",
    "OpenAICompatibleBackend",
    "ToolCall",
    "build_backend",
    "parse_tool_arguments",
]


def _build_gemini(settings: Settings) -> ChatBackend:
    return GeminiBackend(
        settings.api_key,
        settings.model,
        temperature=settings.temperature,
        request_timeout=settings.request_timeout,
    )


def _build_openai(settings: Settings) -> ChatBackend:
    client = AIClient(
        ClientSettings(
            base_url=settings.base_url,
            api_key=settings.local_api_key,
            model=settings.local_model,
            request_timeout=settings.request_timeout,
            debug_logging=settings.debug_logging,
        )
    )
    return OpenAICompatibleBackend(client, temperature=settings.temperature)


_BACKENDS: Dict[str, Callable[[Settings], ChatBackend]] = {
    "gemini": _build_gemini,
    "openai": _build_openai,
}


def build_backend(settings: Settings) -> ChatBackend:
    """Return the adapter for ``settings.provider`` (``local`` maps to ``openai``)."""

    return _BACKENDS[normalize_provider(settings.provider)](settings)
