"""Backend adapter for the native Gemini protocol via the ``google-genai`` SDK."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Callable, Dict, List, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..errors import CredentialError, TransportError
from ..tools.types import ToolDescriptor
from .base import BackendResponse, ModelMessage, ToolCall

__all__ = ["GeminiBackend", "sanitize_schema"]

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[str, float | None], Any]

_SCHEMA_KEYS = ("type", "description", "nullable", "enum", "items", "properties", "required")
_REJECTED_KEY_MARKER = "API key not valid"
_CREDENTIAL_STATUS = {401, 403}


def sanitize_schema(schema: Any) -> Dict[str, Any]:
    """Reduce a JSON schema to the subset accepted by Gemini function declarations."""

    if not isinstance(schema, Mapping):
        return {"type": "STRING"}
    result: Dict[str, Any] = {}
    raw_type = schema.get("type")
    if isinstance(raw_type, (list, tuple)):
        concrete = [item for item in raw_type if item != "null"]
        if len(concrete) != len(raw_type):
            result["nullable"] = True
        raw_type = concrete[0] if concrete else "string"
    if not raw_type:
        raw_type = "object" if "properties" in schema else "string"
    result["type"] = str(raw_type).upper()
    for key in _SCHEMA_KEYS:
        if key == "type" or key not in schema:
            continue
        value = schema[key]
        if key == "properties":
            if isinstance(value, Mapping) and value:
                result[key] = {str(name): sanitize_schema(sub) for name, sub in value.items()}
        elif key == "items":
            result[key] = sanitize_schema(value)
        elif key == "enum":
            if isinstance(value, (list, tuple)) and value:
                result[key] = [str(item) for item in value]
        elif key == "required":
            if isinstance(value, (list, tuple)):
                result[key] = [str(item) for item in value]
        else:
            result[key] = value
    if "required" in result:
        known = result.get("properties", {})
        result["required"] = [name for name in result["required"] if name in known]
        if not result["required"]:
            result.pop("required")
    if result["type"] == "ARRAY" and "items" not in result:
        result["items"] = {"type": "STRING"}
    return result


def _plain(value: Any) -> Any:
    """Copy SDK mappings and sequences into plain Python containers."""

    if isinstance(value, (str, bytes, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, Iterable):
        return [_plain(item) for item in value]
    return value


class GeminiBackend:
    """``user``/``model`` contents with function-call and function-response parts."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        temperature: float | None = None,
        request_timeout: float | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._model = model
        self._temperature = temperature
        self._request_timeout = request_timeout
        self._client_factory = client_factory or _build_client
        self._client: Any = None

    async def send(
        self,
        system_context: str,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDescriptor],
    ) -> BackendResponse:
        if not self._api_key:
            raise CredentialError(CredentialError.MISSING, provider=self.name)
        declarations = [self._declaration(tool) for tool in tools]
        config: Dict[str, Any] = {"system_instruction": system_context}
        if declarations:
            config["tools"] = [{"function_declarations": declarations}]
        if self._temperature is not None:
            config["temperature"] = self._temperature
        contents = self._build_contents(messages)
        LOGGER.debug(
            "Requesting Gemini completion via %s with %d content(s) and %d tool(s)",
            self._model,
            len(contents),
            len(declarations),
        )
        if self._client is None:
            self._client = self._client_factory(self._api_key, self._request_timeout)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model, contents=contents, config=config
            )
        except genai_errors.APIError as exc:
            if exc.code in _CREDENTIAL_STATUS or (
                exc.code == 400 and _REJECTED_KEY_MARKER in str(exc)
            ):
                raise CredentialError(
                    CredentialError.REJECTED, str(exc), provider=self.name, cause=exc
                ) from exc
            raise TransportError(str(exc), status_code=exc.code, cause=exc) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Gemini request failed: {exc}", cause=exc) from exc
        return self._parse_response(response)

    def extract_tool_calls(self, response: BackendResponse) -> List[ToolCall]:
        return list(response.tool_calls)

    def assistant_message(self, response: BackendResponse) -> ModelMessage:
        return ModelMessage(
            role="assistant",
            text=response.text,
            tool_calls=list(response.tool_calls),
            native=self._model_content(response.text, response.tool_calls),
        )

    def tool_result_message(self, call: ToolCall, result: str) -> ModelMessage:
        return ModelMessage(
            role="tool",
            text=result,
            tool_call_id=call.id,
            tool_name=call.name,
            native=self._function_response(call.name, result),
        )

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        close = getattr(client.aio, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Wire helpers
    # ------------------------------------------------------------------
    def _build_contents(self, messages: Sequence[ModelMessage]) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        folding = False
        for message in messages:
            if message.role == "tool":
                part = message.native or self._function_response(
                    message.tool_name or "", message.text
                )
                if folding:
                    contents[-1]["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
                    folding = True
                continue
            folding = False
            if message.role == "assistant":
                if isinstance(message.native, dict) and message.native.get("role") == "model":
                    contents.append(message.native)
                else:
                    contents.append(self._model_content(message.text, message.tool_calls))
            else:
                contents.append({"role": "user", "parts": [{"text": message.text}]})
        return contents

    @staticmethod
    def _model_content(text: str, tool_calls: Sequence[ToolCall]) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = []
        if text:
            parts.append({"text": text})
        for call in tool_calls:
            parts.append({"function_call": {"name": call.name, "args": dict(call.arguments)}})
        if not parts:
            parts.append({"text": ""})
        return {"role": "model", "parts": parts}

    @staticmethod
    def _function_response(name: str, result: str) -> Dict[str, Any]:
        return {"function_response": {"name": name, "response": {"result": result}}}

    @staticmethod
    def _declaration(tool: ToolDescriptor) -> Dict[str, Any]:
        declaration: Dict[str, Any] = {"name": tool.name, "description": tool.description}
        parameters = sanitize_schema(tool.parameters_schema())
        # Gemini rejects OBJECT parameters without properties.
        if parameters.get("properties"):
            declaration["parameters"] = parameters
        return declaration

    def _parse_response(self, response: Any) -> BackendResponse:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return BackendResponse(raw=response)
        content = getattr(candidates[0], "content", None)
        texts: List[str] = []
        calls: List[ToolCall] = []
        for part in getattr(content, "parts", None) or []:
            function_call = getattr(part, "function_call", None)
            name = getattr(function_call, "name", None) if function_call is not None else None
            if name:
                args = _plain(getattr(function_call, "args", None) or {})
                calls.append(
                    ToolCall(
                        id=f"{name}-{uuid.uuid4().hex[:8]}",
                        name=str(name),
                        arguments=args if isinstance(args, dict) else {},
                    )
                )
                continue
            text = getattr(part, "text", None)
            if text:
                texts.append(str(text))
        return BackendResponse(text="".join(texts), tool_calls=calls, raw=response)


def _build_client(api_key: str, request_timeout: float | None) -> genai.Client:
    http_options = None
    if request_timeout:
        # The SDK takes its timeout in milliseconds.
        http_options = genai_types.HttpOptions(timeout=int(request_timeout * 1000))
    return genai.Client(api_key=api_key, http_options=http_options)
