"""Transport dispatch for tool-server sessions built on the ``mcp`` SDK."""

from __future__ import annotations

import logging
import os
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, Mapping, Protocol, Tuple

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.types import Implementation

from .types import McpServerConfig, TransportType

__all__ = [
    "ToolSession",
    "SessionFactory",
    "CLIENT_NAME",
    "validate_config",
    "open_session",
]

LOGGER = logging.getLogger(__name__)

CLIENT_NAME = "WinMD-Explorer"
CLIENT_VERSION = "1.0.0"


class ToolSession(Protocol):
    """The subset of :class:`mcp.ClientSession` used by the registry."""

    async def list_tools(self) -> Any:  # pragma: no cover - protocol
        ...

    async def call_tool(self, name: str, arguments: Dict[str, Any] | None = None) -> Any:  # pragma: no cover - protocol
        ...


# A factory opens an initialised session whose resources are owned by the stack.
SessionFactory = Callable[[McpServerConfig, AsyncExitStack], Awaitable[ToolSession]]

_Streams = Tuple[Any, Any]


def validate_config(config: McpServerConfig) -> None:
    """Raise ``ValueError`` when ``config`` lacks what its transport needs."""

    if config.type == TransportType.STDIO:
        if not config.command.strip():
            raise ValueError("Command is required")
    elif config.type == TransportType.SSE:
        if not config.url.strip():
            raise ValueError("URL is required")
    else:
        raise ValueError(f"Unknown transport type: {config.type!r}")


async def _open_stdio(config: McpServerConfig, stack: AsyncExitStack) -> _Streams:
    env = dict(os.environ)
    env.update(config.env)
    params = StdioServerParameters(command=config.command, args=list(config.args), env=env)
    return await stack.enter_async_context(stdio_client(params))


async def _open_sse(config: McpServerConfig, stack: AsyncExitStack) -> _Streams:
    return await stack.enter_async_context(sse_client(config.url))


_TRANSPORTS: Mapping[str, Callable[[McpServerConfig, AsyncExitStack], Awaitable[_Streams]]] = {
    TransportType.STDIO: _open_stdio,
    TransportType.SSE: _open_sse,
}


async def open_session(
    config: McpServerConfig,
    stack: AsyncExitStack,
    *,
    client_name: str = CLIENT_NAME,
) -> ClientSession:
    """Open and initialise a client session for ``config`` inside ``stack``."""

    validate_config(config)
    opener = _TRANSPORTS[config.type]
    LOGGER.debug("Opening %s transport for tool server %s", config.type, config.display_name)
    read_stream, write_stream = await opener(config, stack)
    session = await stack.enter_async_context(
        ClientSession(
            read_stream,
            write_stream,
            client_info=Implementation(name=client_name, version=CLIENT_VERSION),
        )
    )
    await session.initialize()
    return session
