"""Tool-server bridge exposing MCP tools to the assistant."""

from .registry import DEFAULT_TEST_TIMEOUT, ToolRegistry, normalize_tool_result
from .types import (
    ConnectionStatus,
    ConnectionTestResult,
    McpServerConfig,
    ToolDescriptor,
    TransportType,
)

__all__ = [
    "ConnectionStatus",
    "ConnectionTestResult",
    "DEFAULT_TEST_TIMEOUT",
    "McpServerConfig",
    "ToolDescriptor",
    "ToolRegistry",
    "TransportType",
    "normalize_tool_result",
]
