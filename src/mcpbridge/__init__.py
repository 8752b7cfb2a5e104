"""
mcpbridge — talk to MCP tool servers over stdio.

Usage:
    from mcpbridge import ToolServerManager, default_server_registry

    async with ToolServerManager() as manager:
        manager.register_all(default_server_registry())
        await manager.start_all()
        result = await manager.call("echo", "echo", {"text": "hello"})
        print(result.text)
"""

from .models import (
    ContentBlock,
    SessionState,
    ToolDescriptor,
    ToolResult,
)
from .errors import (
    ConnectTimeoutError,
    MalformedMessageError,
    McpError,
    NotReadyError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
    UnknownServerError,
    UsageError,
)
from .config import (
    ServerDef,
    ServerRegistry,
    Settings,
    default_server_registry,
    discover_claude_config,
)
from .mcp.session import McpSession
from .mcp.manager import ToolServerManager

__version__ = "0.1.0"

__all__ = [
    # Core
    "McpSession",
    "ToolServerManager",
    # Config
    "ServerDef",
    "ServerRegistry",
    "Settings",
    "default_server_registry",
    "discover_claude_config",
    # Models
    "ContentBlock",
    "SessionState",
    "ToolDescriptor",
    "ToolResult",
    # Errors
    "McpError",
    "TransportError",
    "RequestTimeoutError",
    "ConnectTimeoutError",
    "ProtocolError",
    "MalformedMessageError",
    "UsageError",
    "NotReadyError",
    "UnknownServerError",
]
