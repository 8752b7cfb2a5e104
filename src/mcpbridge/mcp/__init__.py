"""
MCP client infrastructure.

Provides:
- LineFramer — newline framing of the server's stdout
- RequestMultiplexer / StdioTransport — JSON-RPC over a subprocess's stdio pipes
- McpSession — handshake and tool calls for one server
- ToolServerManager — lifecycle management for several servers
- StdioToolServer / ToolHandler — framework for building tool servers
- Bridge utilities — MCP tools -> LangChain StructuredTool wrappers
"""

from .framing import LineFramer, decode_message
from .transport import JsonRpcRequest, JsonRpcResponse, RequestMultiplexer, StdioTransport
from .session import McpSession
from .manager import ToolServerManager
from .server import StdioToolServer, ToolHandler

__all__ = [
    "LineFramer",
    "decode_message",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RequestMultiplexer",
    "StdioTransport",
    "McpSession",
    "ToolServerManager",
    "StdioToolServer",
    "ToolHandler",
]
