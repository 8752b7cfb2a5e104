"""
Bridge between MCP tool servers and LangChain agents.

Converts tools discovered on running MCP servers into LangChain
StructuredTools, so an agent can call them like any other tool.
"""

from __future__ import annotations

import json
from typing import Any

from langchain_core.tools import StructuredTool

from ..errors import McpError
from ..models import ToolResult
from .manager import ToolServerManager


def format_tool_result(result: ToolResult) -> str:
    """Render a ToolResult as the text an agent sees."""
    if result.content:
        text = result.text
    else:
        text = json.dumps(result.structured, indent=2)
    if result.is_error:
        return f"Error: {text}"
    return text


def mcp_to_langchain_tool(
    manager: ToolServerManager,
    server_id: str,
    tool_name: str,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that wraps an MCP tool server call.

    When invoked by an agent, sends a tools/call request to the
    specified server and returns the result as text. Failures are
    returned as text too, so the agent can see and react to them.
    """
    tool_schema = next((t for t in manager.list_tools(server_id) if t.name == tool_name), None)

    description = (
        description_override
        or (tool_schema.description if tool_schema and tool_schema.description else None)
        or f"MCP tool: {server_id}/{tool_name}"
    )

    async def _call_mcp(**kwargs: Any) -> str:
        try:
            result = await manager.call(server_id, tool_name, kwargs)
        except McpError as e:
            return f"Error calling {server_id}/{tool_name}: {e}"
        return format_tool_result(result)

    return StructuredTool.from_function(
        coroutine=_call_mcp,
        name=tool_name,
        description=description,
        # Always a dict schema, so arguments reach the server unfiltered
        args_schema=(tool_schema.input_schema if tool_schema else None) or {"type": "object", "properties": {}},
    )


def load_langchain_tools(
    manager: ToolServerManager,
    server_ids: list[str] | None = None,
) -> list[StructuredTool]:
    """Wrap every tool of every running server (or just `server_ids`)."""
    tools = []
    for server_id, running in manager.list_servers().items():
        if not running or (server_ids is not None and server_id not in server_ids):
            continue
        for descriptor in manager.list_tools(server_id):
            tools.append(mcp_to_langchain_tool(manager, server_id, descriptor.name))
    return tools
