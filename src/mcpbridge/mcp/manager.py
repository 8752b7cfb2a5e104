"""
Tool Server Manager — launches and manages MCP tool server processes.

Usage:
    manager = ToolServerManager()
    manager.register_server(ServerDef("echo", sys.executable, ["-m", "mcpbridge.mcp.servers.echo"]))
    tools = await manager.start("echo")
    result = await manager.call("echo", "add", {"a": 2, "b": 2})
    await manager.stop_all()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from ..config import ServerDef, ServerRegistry, Settings
from ..errors import McpError, NotReadyError, UnknownServerError
from ..models import ToolDescriptor, ToolResult
from .session import McpSession

logger = logging.getLogger(__name__)


class ToolServerManager:
    """
    Manages the lifecycle of MCP tool server processes.

    Responsibilities:
    - Launch tool servers as subprocesses (stdio transport), with retry
    - Route tool calls to the correct server
    - Graceful shutdown

    Each server gets its own session; sessions share no state, so servers
    connect and serve calls concurrently.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: Callable[[ServerDef, Settings], McpSession] = McpSession,
    ):
        self.settings = settings or Settings()
        self._session_factory = session_factory
        self._servers: dict[str, ServerDef] = {}
        self._sessions: dict[str, McpSession] = {}

    def register_server(self, server_def: ServerDef) -> None:
        """Register a tool server (does not start it yet)."""
        self._servers[server_def.name] = server_def
        logger.info(f"Registered server: {server_def.name}")

    def register_all(self, registry: ServerRegistry) -> int:
        for server_def in registry:
            self.register_server(server_def)
        return registry.count

    async def start(self, server_id: str) -> list[ToolDescriptor]:
        """Start a tool server and discover its tools, retrying on failure."""
        server_def = self._get_def(server_id)
        await self.stop(server_id)

        attempts = self.settings.connect_attempts
        attempt = 0
        while True:
            attempt += 1
            logger.info(f"Connecting to MCP server: {server_id} (attempt {attempt}/{attempts})")
            session = self._session_factory(server_def, self.settings)
            try:
                await session.connect()
            except McpError as e:
                logger.error(f"Failed to connect to {server_id} (attempt {attempt}): {e}")
                if attempt >= attempts:
                    logger.error(f"Giving up on {server_id} after {attempts} attempts")
                    raise
                await asyncio.sleep(self.settings.retry_delay)
                continue

            self._sessions[server_id] = session
            tool_names = [t.name for t in session.tools]
            logger.info(f"Started {server_id}: tools={tool_names}")
            return session.tools

    async def start_all(self) -> dict[str, list[ToolDescriptor]]:
        """Start all registered servers concurrently."""
        names = list(self._servers)
        outcomes = await asyncio.gather(
            *(self.start(name) for name in names), return_exceptions=True
        )

        results = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, McpError):
                logger.error(f"Failed to start {name}: {outcome}")
                results[name] = []
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[name] = outcome
        logger.info(f"Connected to {sum(1 for n in names if self.is_running(n))} MCP servers")
        return results

    async def stop(self, server_id: str) -> None:
        session = self._sessions.pop(server_id, None)
        if session:
            await session.disconnect()
            logger.info(f"Stopped {server_id}")

    async def stop_all(self) -> None:
        logger.info("Cleaning up MCP connections...")
        await asyncio.gather(*(self.stop(server_id) for server_id in list(self._sessions)))

    async def call(
        self,
        server_id: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Call a tool on a specific server."""
        self._get_def(server_id)
        session = self._sessions.get(server_id)
        if session is None or not session.connected:
            raise NotReadyError(f"MCP server '{server_id}' not connected")

        logger.info(f"Calling MCP function: {server_id}.{tool_name}")
        result = await session.call_tool(tool_name, arguments or {})
        logger.debug(f"MCP function {server_id}.{tool_name} returned: {result.raw!r}")
        return result

    def get_session(self, server_id: str) -> McpSession | None:
        return self._sessions.get(server_id)

    def list_tools(self, server_id: str) -> list[ToolDescriptor]:
        session = self._sessions.get(server_id)
        return session.tools if session else []

    def list_servers(self) -> dict[str, bool]:
        return {sid: self.is_running(sid) for sid in self._servers}

    def is_running(self, server_id: str) -> bool:
        session = self._sessions.get(server_id)
        return session is not None and session.connected

    def status(self) -> dict[str, dict[str, Any]]:
        """Health snapshot: connection state and tool names per server."""
        snapshot = {}
        for sid in self._servers:
            session = self._sessions.get(sid)
            snapshot[sid] = {
                "connected": self.is_running(sid),
                "state": session.state.value if session else "unstarted",
                "tools": [t.name for t in session.tools] if session else [],
            }
        return snapshot

    async def __aenter__(self) -> ToolServerManager:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop_all()

    def _get_def(self, server_id: str) -> ServerDef:
        server_def = self._servers.get(server_id)
        if server_def is None:
            available = ", ".join(self._servers) or "none"
            raise UnknownServerError(
                f"MCP server '{server_id}' not found (available: {available})"
            )
        return server_def
