"""
Tests for the LangChain bridge (no LLM required).
"""

import json

import pytest

from mcpbridge import ServerDef, ToolDescriptor, ToolResult, ToolServerManager
from mcpbridge.mcp.bridge import format_tool_result, load_langchain_tools, mcp_to_langchain_tool

from fakes import FakeSession, fast_settings

WEATHER_TOOLS = [
    ToolDescriptor(
        "forecast",
        "Get the forecast for a city",
        {"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
    ),
    ToolDescriptor("boom", "Always rejected by the server"),
    ToolDescriptor("ping", "Server declares no input schema"),
]


async def _started_manager() -> ToolServerManager:
    manager = ToolServerManager(
        settings=fast_settings(),
        session_factory=lambda d, s: FakeSession(d, s, tools=WEATHER_TOOLS),
    )
    manager.register_server(ServerDef(name="weather", command="weather-mcp"))
    manager.register_server(ServerDef(name="offline", command="offline-mcp"))
    await manager.start("weather")
    return manager


class TestFormatToolResult:
    def test_text_content(self):
        result = ToolResult.from_result({"content": [{"type": "text", "text": "sunny"}]})
        assert format_tool_result(result) == "sunny"

    def test_error_is_prefixed(self):
        result = ToolResult.from_result({
            "content": [{"type": "text", "text": "city not found"}],
            "isError": True,
        })
        assert format_tool_result(result) == "Error: city not found"

    def test_bare_result_is_rendered_as_json(self):
        result = ToolResult.from_result({"temperature": 21})
        assert json.loads(format_tool_result(result)) == {"temperature": 21}


class TestLangChainTool:
    @pytest.mark.asyncio
    async def test_tool_metadata_comes_from_descriptor(self):
        manager = await _started_manager()
        tool = mcp_to_langchain_tool(manager, "weather", "forecast")

        assert tool.name == "forecast"
        assert tool.description == "Get the forecast for a city"
        assert "city" in tool.args

    @pytest.mark.asyncio
    async def test_description_override(self):
        manager = await _started_manager()
        tool = mcp_to_langchain_tool(manager, "weather", "forecast", "Weather lookup")
        assert tool.description == "Weather lookup"

    @pytest.mark.asyncio
    async def test_invocation_calls_the_server(self):
        manager = await _started_manager()
        tool = mcp_to_langchain_tool(manager, "weather", "forecast")

        output = await tool.ainvoke({"city": "Oslo"})

        assert json.loads(output) == {"city": "Oslo"}
        assert manager.get_session("weather").calls == [("forecast", {"city": "Oslo"})]

    @pytest.mark.asyncio
    async def test_arguments_pass_through_without_a_schema(self):
        manager = await _started_manager()
        tool = mcp_to_langchain_tool(manager, "weather", "ping")

        output = await tool.ainvoke({"x": 1, "verbose": True})

        assert json.loads(output) == {"x": 1, "verbose": True}
        assert manager.get_session("weather").calls == [("ping", {"x": 1, "verbose": True})]

    @pytest.mark.asyncio
    async def test_server_errors_become_text(self):
        manager = await _started_manager()
        tool = mcp_to_langchain_tool(manager, "weather", "boom")

        output = await tool.ainvoke({})

        assert output.startswith("Error calling weather/boom:")
        assert "Unknown tool: boom" in output

    @pytest.mark.asyncio
    async def test_unconnected_server_becomes_text(self):
        manager = await _started_manager()
        tool = mcp_to_langchain_tool(manager, "offline", "anything")

        assert tool.description == "MCP tool: offline/anything"
        output = await tool.ainvoke({"any": "thing"})
        assert "not connected" in output

    @pytest.mark.asyncio
    async def test_load_tools_from_running_servers_only(self):
        manager = await _started_manager()

        tools = load_langchain_tools(manager)
        assert [t.name for t in tools] == ["forecast", "boom", "ping"]

        assert load_langchain_tools(manager, server_ids=["offline"]) == []
