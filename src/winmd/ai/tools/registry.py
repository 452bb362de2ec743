"""Registry of live tool-server connections.

The registry owns at most one set of connections at a time. ``connect``
tears the previous set down before opening the new one, ``list_tools``
aggregates descriptors across servers and ``invoke`` routes a call back to
the server that advertised the tool.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping

from ..errors import ToolExecutionError
from .transports import SessionFactory, ToolSession, open_session, validate_config
from .types import ConnectionStatus, ConnectionTestResult, McpServerConfig, ToolDescriptor

__all__ = ["ToolRegistry", "normalize_tool_result", "DEFAULT_TEST_TIMEOUT"]

LOGGER = logging.getLogger(__name__)

DEFAULT_TEST_TIMEOUT = 15.0


@dataclass(slots=True)
class _Connection:
    config: McpServerConfig
    session: ToolSession
    stack: AsyncExitStack


class ToolRegistry:
    """Connects to tool servers and bridges tool calls to them."""

    def __init__(self, *, session_factory: SessionFactory | None = None) -> None:
        self._session_factory: SessionFactory = session_factory or open_session
        self._connections: Dict[str, _Connection] = {}

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    @property
    def connected_ids(self) -> tuple[str, ...]:
        return tuple(self._connections)

    def is_connected(self, server_id: str) -> bool:
        return server_id in self._connections

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    async def connect(self, configs: Iterable[McpServerConfig]) -> List[ConnectionStatus]:
        """Replace every live connection with connections for the enabled ``configs``."""

        await self.aclose()
        statuses: List[ConnectionStatus] = []
        for config in configs:
            if not config.enabled:
                continue
            stack = AsyncExitStack()
            try:
                session = await self._session_factory(config, stack)
            except Exception as exc:
                LOGGER.warning("Tool server %s failed to connect: %s", config.display_name, exc)
                await _close_stack(stack, config)
                statuses.append(
                    ConnectionStatus(config.id, ConnectionStatus.ERROR, _describe(exc))
                )
                continue
            self._connections[config.id] = _Connection(config=config, session=session, stack=stack)
            LOGGER.info("Tool server connected: %s", config.display_name)
            statuses.append(ConnectionStatus(config.id, ConnectionStatus.CONNECTED))
        return statuses

    async def test_connection(
        self,
        config: McpServerConfig,
        *,
        timeout: float = DEFAULT_TEST_TIMEOUT,
    ) -> ConnectionTestResult:
        """Open a throw-away session, list its tools and close it again."""

        try:
            validate_config(config)
        except ValueError as exc:
            return ConnectionTestResult(success=False, error=str(exc))

        async def _probe() -> List[str]:
            async with AsyncExitStack() as stack:
                session = await self._session_factory(config, stack)
                listing = await session.list_tools()
                return [ToolDescriptor.from_listing(tool, config).name for tool in _tools_of(listing)]

        try:
            names = await asyncio.wait_for(_probe(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Tool server test for %s timed out", config.display_name)
            return ConnectionTestResult(
                success=False, error=f"Connection timed out ({timeout:g}s)"
            )
        except Exception as exc:
            LOGGER.warning("Tool server test for %s failed: %s", config.display_name, exc)
            return ConnectionTestResult(success=False, error=_describe(exc))
        return ConnectionTestResult(success=True, tool_count=len(names), tool_names=tuple(names))

    async def aclose(self) -> None:
        connections = list(self._connections.values())
        self._connections.clear()
        for connection in connections:
            await _close_stack(connection.stack, connection.config)

    # ------------------------------------------------------------------
    # Tool access
    # ------------------------------------------------------------------
    async def list_tools(self) -> List[ToolDescriptor]:
        descriptors: List[ToolDescriptor] = []
        for server_id, connection in list(self._connections.items()):
            try:
                listing = await connection.session.list_tools()
            except Exception as exc:
                LOGGER.error(
                    "Error listing tools for %s: %s", connection.config.display_name, exc
                )
                continue
            for tool in _tools_of(listing):
                descriptor = ToolDescriptor.from_listing(tool, connection.config)
                if descriptor.name:
                    descriptors.append(descriptor)
        return descriptors

    async def invoke(self, descriptor: ToolDescriptor, arguments: Mapping[str, Any]) -> str:
        """Call ``descriptor`` on its owning server and return the result as text.

        A missing connection yields an error string rather than an exception;
        failures raised by the server transport become :class:`ToolExecutionError`.
        """

        connection = self._connections.get(descriptor.server_id)
        if connection is None:
            LOGGER.warning(
                "Tool %s requested on server %s which is not connected",
                descriptor.name,
                descriptor.server_id,
            )
            return f"Error: Server {descriptor.server_id} not found or not connected."
        LOGGER.debug("Calling tool %s on %s", descriptor.name, connection.config.display_name)
        try:
            result = await connection.session.call_tool(descriptor.name, arguments=dict(arguments))
        except Exception as exc:
            LOGGER.error(
                "Error calling tool %s on %s: %s",
                descriptor.name,
                connection.config.display_name,
                exc,
            )
            raise ToolExecutionError(_describe(exc), descriptor.name, exc) from exc
        return normalize_tool_result(result)


# ----------------------------------------------------------------------
# Result normalisation
# ----------------------------------------------------------------------


def normalize_tool_result(result: Any) -> str:
    """Flatten a tool result into the text handed back to the model.

    Text content blocks are concatenated; other blocks and structured payloads
    are rendered as JSON. Server-reported errors are prefixed with ``Error:``.
    """

    if isinstance(result, str):
        return result
    if result is None:
        return ""
    content = _field(result, "content")
    is_error = bool(_field(result, "isError") or _field(result, "is_error"))
    if isinstance(content, list):
        parts = [_block_text(block) for block in content]
        text = "\n".join(part for part in parts if part)
        if not text:
            structured = _field(result, "structuredContent")
            if structured is not None:
                text = _dump_json(structured)
    elif isinstance(content, str):
        text = content
    else:
        text = _dump_json(result)
    return f"Error: {text}" if is_error else text


def _block_text(block: Any) -> str:
    if _field(block, "type") == "text":
        value = _field(block, "text")
        return value if isinstance(value, str) else ""
    return _dump_json(block)


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _jsonable(value: Any) -> Any:
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        return dump(mode="json", exclude_none=True)
    return value


def _dump_json(value: Any) -> str:
    return json.dumps(_jsonable(value), ensure_ascii=False, default=str)


def _tools_of(listing: Any) -> List[Any]:
    tools = _field(listing, "tools") if not isinstance(listing, list) else listing
    return list(tools) if isinstance(tools, (list, tuple)) else []


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return message or exc.__class__.__name__


async def _close_stack(stack: AsyncExitStack, config: McpServerConfig) -> None:
    try:
        await stack.aclose()
    except Exception as exc:
        LOGGER.warning("Error closing tool server %s: %s", config.display_name, exc)
