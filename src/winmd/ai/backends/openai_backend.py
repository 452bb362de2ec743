"""Backend adapter for OpenAI-compatible chat completion servers."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Sequence

import httpx
from openai import APIConnectionError, APIError, APIStatusError

from ..client import AIClient
from ..errors import CredentialError, TransportError
from ..tools.types import ToolDescriptor
from .base import BackendResponse, ModelMessage, ToolCall, parse_tool_arguments

__all__ = ["OpenAICompatibleBackend"]

LOGGER = logging.getLogger(__name__)

_CREDENTIAL_STATUS = {401, 403}


class OpenAICompatibleBackend:
    """Flat ``system``/``user``/``assistant``/``tool`` message protocol."""

    name = "openai"

    def __init__(self, client: AIClient, *, temperature: float | None = None) -> None:
        self._client = client
        self._temperature = temperature

    @property
    def client(self) -> AIClient:
        return self._client

    async def send(
        self,
        system_context: str,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDescriptor],
    ) -> BackendResponse:
        wire: List[Dict[str, Any]] = [{"role": "system", "content": system_context}]
        wire.extend(self._to_wire(message) for message in messages)
        tool_payload = [self._tool_definition(tool) for tool in tools]
        try:
            completion = await self._client.create_chat(
                wire,
                tools=tool_payload or None,
                temperature=self._temperature,
            )
        except APIStatusError as exc:
            if exc.status_code in _CREDENTIAL_STATUS:
                raise CredentialError(
                    CredentialError.REJECTED, str(exc), provider=self.name, cause=exc
                ) from exc
            raise TransportError(
                f"Local AI Error: {exc.status_code} {exc.message}",
                status_code=exc.status_code,
                cause=exc,
            ) from exc
        except (APIConnectionError, httpx.TimeoutException) as exc:
            raise TransportError(f"Local AI Error: {exc}", cause=exc) from exc
        except APIError as exc:
            raise TransportError(f"Local AI Error: {exc}", cause=exc) from exc
        return self._parse_completion(completion)

    def extract_tool_calls(self, response: BackendResponse) -> List[ToolCall]:
        return list(response.tool_calls)

    def assistant_message(self, response: BackendResponse) -> ModelMessage:
        native: Dict[str, Any] = {"role": "assistant", "content": response.text or None}
        if response.tool_calls:
            native["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(dict(call.arguments), ensure_ascii=False),
                    },
                }
                for call in response.tool_calls
            ]
        return ModelMessage(
            role="assistant",
            text=response.text,
            tool_calls=list(response.tool_calls),
            native=native,
        )

    def tool_result_message(self, call: ToolCall, result: str) -> ModelMessage:
        return ModelMessage(
            role="tool",
            text=result,
            tool_call_id=call.id,
            tool_name=call.name,
            native={
                "role": "tool",
                "tool_call_id": call.id,
                "name": call.name,
                "content": result,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Wire helpers
    # ------------------------------------------------------------------
    def _to_wire(self, message: ModelMessage) -> Dict[str, Any]:
        if isinstance(message.native, dict) and message.native.get("role") in (
            "assistant",
            "tool",
            "user",
        ):
            return dict(message.native)
        if message.role == "tool":
            return self.tool_result_message(
                ToolCall(id=message.tool_call_id or "", name=message.tool_name or ""),
                message.text,
            ).native
        if message.role == "assistant":
            if message.tool_calls:
                response = BackendResponse(text=message.text, tool_calls=list(message.tool_calls))
                return self.assistant_message(response).native
            return {"role": "assistant", "content": message.text}
        return {"role": "user", "content": message.text}

    @staticmethod
    def _tool_definition(tool: ToolDescriptor) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema(),
            },
        }

    def _parse_completion(self, completion: Any) -> BackendResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            return BackendResponse(raw=completion)
        message = getattr(choices[0], "message", None)
        if message is None:
            return BackendResponse(raw=completion)
        text = getattr(message, "content", None) or ""
        calls: List[ToolCall] = []
        for raw_call in getattr(message, "tool_calls", None) or []:
            function = getattr(raw_call, "function", None)
            name = getattr(function, "name", None) or ""
            call_id = getattr(raw_call, "id", None) or f"call_{uuid.uuid4().hex[:12]}"
            arguments = parse_tool_arguments(getattr(function, "arguments", None), tool_name=name)
            calls.append(ToolCall(id=call_id, name=name, arguments=arguments))
        return BackendResponse(text=text, tool_calls=calls, raw=completion)
