"""Value types shared by the tool registry and the conversation orchestrator.

Tool descriptors are ephemeral: they are re-listed from the connected servers
before every chat turn and carry the id of the server that owns them so a
call can be routed back to it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

__all__ = [
    "TransportType",
    "McpServerConfig",
    "ToolDescriptor",
    "ConnectionStatus",
    "ConnectionTestResult",
]


# -----------------------------------------------------------------------------
# Server configuration
# -----------------------------------------------------------------------------


class TransportType:
    """Transport tags understood by :func:`winmd.ai.tools.transports.open_session`."""

    STDIO = "stdio"
    SSE = "sse"


@dataclass(slots=True)
class McpServerConfig:
    """Connection settings for one tool server.

    Attributes:
        id: Stable identifier used as the tool affinity tag.
        name: Display name.
        type: ``stdio`` (local subprocess) or ``sse`` (network stream).
        command: Executable launched for ``stdio`` servers.
        args: Arguments passed to ``command``.
        env: Extra environment variables layered over the current environment.
        url: Endpoint for ``sse`` servers.
        enabled: Disabled servers are skipped on connect.
    """

    id: str
    name: str = ""
    type: str = TransportType.STDIO
    command: str = ""
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    url: str = ""
    enabled: bool = True

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "McpServerConfig":
        args = payload.get("args")
        env = payload.get("env")
        return cls(
            id=str(payload.get("id") or payload.get("name") or ""),
            name=str(payload.get("name") or ""),
            type=str(payload.get("type") or TransportType.STDIO).strip().lower(),
            command=str(payload.get("command") or ""),
            args=[str(item) for item in args] if isinstance(args, (list, tuple)) else [],
            env={str(k): str(v) for k, v in env.items()} if isinstance(env, Mapping) else {},
            url=str(payload.get("url") or ""),
            enabled=bool(payload.get("enabled", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "command": self.command,
            "args": list(self.args),
            "env": dict(self.env),
            "url": self.url,
            "enabled": self.enabled,
        }


# -----------------------------------------------------------------------------
# Tool descriptors
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolDescriptor:
    """A tool advertised by a connected server, tagged with that server's id."""

    name: str
    description: str = ""
    input_schema: Mapping[str, Any] = field(default_factory=dict)
    server_id: str = ""
    server_name: str = ""

    @classmethod
    def from_listing(cls, tool: Any, config: McpServerConfig) -> "ToolDescriptor":
        """Build a descriptor from an ``mcp.types.Tool`` (or an equivalent mapping)."""

        if isinstance(tool, Mapping):
            name = tool.get("name")
            description = tool.get("description")
            schema = tool.get("inputSchema") or tool.get("input_schema")
        else:
            name = getattr(tool, "name", None)
            description = getattr(tool, "description", None)
            schema = getattr(tool, "inputSchema", None)
        return cls(
            name=str(name or ""),
            description=str(description or ""),
            input_schema=dict(schema) if isinstance(schema, Mapping) else {},
            server_id=config.id,
            server_name=config.display_name,
        )

    def parameters_schema(self) -> Dict[str, Any]:
        """Return the input schema, defaulting to an empty object schema."""

        if self.input_schema:
            return dict(self.input_schema)
        return {"type": "object", "properties": {}}


# -----------------------------------------------------------------------------
# Connection results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ConnectionStatus:
    server_id: str
    status: str
    error: str | None = None

    CONNECTED = "connected"
    ERROR = "error"

    @property
    def connected(self) -> bool:
        return self.status == self.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.server_id, "status": self.status}
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True, frozen=True)
class ConnectionTestResult:
    success: bool
    tool_count: int = 0
    tool_names: Tuple[str, ...] = ()
    error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error or ""}
        return {
            "success": True,
            "toolCount": self.tool_count,
            "toolNames": list(self.tool_names),
        }
