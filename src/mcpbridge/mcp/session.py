"""
MCP client session — spawn, handshake, call tools.

Usage:
    session = McpSession(ServerDef("echo", sys.executable, ["-m", "mcpbridge.mcp.servers.echo"]))
    await session.connect()
    result = await session.call_tool("echo", {"text": "hi"})
    await session.disconnect()

A session is single-use: once it has failed or disconnected, make a new one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import ServerDef, Settings
from ..errors import (
    ConnectTimeoutError,
    NotReadyError,
    ProtocolError,
    TransportError,
    UsageError,
)
from ..models import SessionState, ToolDescriptor, ToolResult
from .transport import StdioTransport

logger = logging.getLogger(__name__)


class McpSession:
    """
    One connection to one MCP server.

    States: unstarted -> connecting -> handshaking -> ready, with failed
    reachable from any state before ready and disconnected reachable from
    ready (process exit or explicit disconnect).
    """

    def __init__(
        self,
        server_def: ServerDef,
        settings: Settings | None = None,
        transport: StdioTransport | None = None,
    ):
        self.server_def = server_def
        self.settings = settings or Settings()
        self.transport = transport or StdioTransport(
            server_def.command,
            server_def.args,
            env=server_def.env,
            name=server_def.name,
            request_timeout=self.settings.request_timeout,
            max_pending=self.settings.max_pending,
        )
        self.transport.on_exit = self._handle_exit
        self.server_info: dict[str, Any] = {}
        self._tools: list[ToolDescriptor] = []
        self._state = SessionState.UNSTARTED

    @property
    def name(self) -> str:
        return self.server_def.name

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.READY

    @property
    def tools(self) -> list[ToolDescriptor]:
        return list(self._tools)

    def get_tool(self, name: str) -> ToolDescriptor | None:
        return next((t for t in self._tools if t.name == name), None)

    async def connect(self) -> dict[str, Any]:
        """
        Spawn the server and run the initialize + tools/list handshake.

        Fails with ConnectTimeoutError if the handshake isn't done within
        settings.connect_timeout, or TransportError if the process dies first.
        Either way the process is stopped and the session ends up failed.
        """
        if self._state is not SessionState.UNSTARTED:
            raise UsageError(
                f"MCP server '{self.name}' session cannot connect from state {self._state.value}"
            )

        self._set_state(SessionState.CONNECTING)
        logger.info(f"Connecting to MCP server {self.name}: {' '.join(self.server_def.argv)}")
        try:
            await self.transport.start()
        except TransportError:
            self._set_state(SessionState.FAILED)
            raise

        self._set_state(SessionState.HANDSHAKING)
        handshake = asyncio.create_task(self._handshake())
        closed = asyncio.create_task(self.transport.wait_closed())
        try:
            done, _ = await asyncio.wait(
                {handshake, closed},
                timeout=self.settings.connect_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if handshake in done:
                self.server_info = handshake.result()
                if not self.transport.is_alive():
                    raise TransportError(
                        f"MCP server '{self.name}' exited with code {self.transport.returncode} during handshake"
                    )
            elif closed in done:
                raise TransportError(
                    f"MCP server '{self.name}' exited with code {self.transport.returncode} before handshake completed"
                )
            else:
                raise ConnectTimeoutError(
                    f"Connection timeout for MCP server '{self.name}' after {self.settings.connect_timeout}s"
                )
        except (Exception, asyncio.CancelledError) as e:
            handshake.cancel()
            await asyncio.gather(handshake, return_exceptions=True)
            self._set_state(SessionState.FAILED)
            logger.error(f"Failed to connect to {self.name}: {e}")
            await self.transport.stop(grace=self.settings.kill_grace)
            raise
        finally:
            closed.cancel()

        self._set_state(SessionState.READY)
        logger.info(f"Connected to {self.name}: tools={[t.name for t in self._tools]}")
        return self.server_info

    async def _handshake(self) -> dict[str, Any]:
        info = await self.transport.request(
            "initialize",
            {
                "protocolVersion": self.settings.protocol_version,
                "capabilities": {"tools": {}},
                "clientInfo": {
                    "name": self.settings.client_name,
                    "version": self.settings.client_version,
                },
            },
            timeout=self.settings.handshake_timeout,
        )
        if not isinstance(info, dict):
            raise ProtocolError(f"MCP server '{self.name}' returned no initialize result")
        logger.info(f"MCP server {self.name} initialized: {info.get('serverInfo', {})}")

        await self.transport.notify("notifications/initialized")
        self._tools = await self._fetch_tools()
        return info

    async def _fetch_tools(self) -> list[ToolDescriptor]:
        tools: list[ToolDescriptor] = []
        params: dict[str, Any] = {}
        while True:
            listing = await self.transport.request(
                "tools/list", params, timeout=self.settings.request_timeout
            )
            if not isinstance(listing, dict):
                raise ProtocolError(f"MCP server '{self.name}' returned an invalid tools/list result")
            entries = listing.get("tools") or []
            if not isinstance(entries, list):
                raise ProtocolError(
                    f"MCP server '{self.name}' returned tools as {type(entries).__name__}, expected a list"
                )
            try:
                tools.extend(ToolDescriptor.from_dict(t) for t in entries)
            except ValueError as e:
                raise ProtocolError(
                    f"MCP server '{self.name}' returned an invalid tool descriptor: {e}"
                ) from e

            cursor = listing.get("nextCursor")
            if not cursor:
                return tools
            params = {"cursor": cursor}

    async def list_tools(self, refresh: bool = False) -> list[ToolDescriptor]:
        """Known tool set; refresh=True asks the server again."""
        if refresh:
            self._require_ready()
            self._tools = await self._fetch_tools()
        return self.tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Call a tool by name. Raises NotReadyError unless the session is ready."""
        self._require_ready()
        result = await self.transport.request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            timeout=self.settings.request_timeout,
        )
        return ToolResult.from_result(result)

    async def disconnect(self) -> None:
        """Stop the server process. Safe to call more than once."""
        await self.transport.stop(grace=self.settings.kill_grace)
        if self._state is SessionState.READY:
            self._set_state(SessionState.DISCONNECTED)

    async def __aenter__(self) -> McpSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    def _require_ready(self) -> None:
        if self._state is not SessionState.READY:
            raise NotReadyError(
                f"MCP server '{self.name}' not connected (state: {self._state.value})"
            )

    def _handle_exit(self, returncode: int | None) -> None:
        if self._state is SessionState.READY:
            logger.warning(f"MCP server '{self.name}' exited with code {returncode}")
            self._set_state(SessionState.DISCONNECTED)

    def _set_state(self, state: SessionState) -> None:
        logger.debug(f"[{self.name}] {self._state.value} -> {state.value}")
        self._state = state
