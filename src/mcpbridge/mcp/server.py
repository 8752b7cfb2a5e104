"""
Minimal stdio MCP server framework.

A ToolHandler subclass declares name, description and a JSON-schema
`parameters` mapping, and implements handle(). StdioToolServer reads one
JSON-RPC message per line from stdin and writes one response per line to
stdout. Logs go to stderr so they never corrupt the protocol stream.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, TextIO

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ToolHandler:
    """Base class for a tool exposed by StdioToolServer."""
    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    required: list[str] = []

    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": self.parameters,
            "required": list(self.required),
        }

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }

    def handle(self, params: dict[str, Any]) -> Any:
        raise NotImplementedError


class ToolError(Exception):
    """Raised by a handler to report a tool-level failure (isError result)."""


class StdioToolServer:
    def __init__(self, name: str = "mcpbridge-server", version: str = "0.1.0"):
        self.name = name
        self.version = version
        self._tools: dict[str, ToolHandler] = {}

    def register(self, tool: ToolHandler) -> None:
        self._tools[tool.name] = tool

    def handle_message(self, message: Any) -> dict | None:
        """Process one decoded message; returns the response, or None for notifications."""
        if not isinstance(message, dict):
            return _error(None, INVALID_REQUEST, "Request must be a JSON object")

        method = message.get("method", "")
        request_id = message.get("id")
        params = message.get("params") or {}

        if request_id is None:
            logger.debug(f"Received notification: {method}")
            return None

        if method == "initialize":
            return _result(request_id, {
                "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": self.version},
            })
        if method == "ping":
            return _result(request_id, {})
        if method == "tools/list":
            return _result(request_id, {"tools": [t.describe() for t in self._tools.values()]})
        if method == "tools/call":
            return self._call_tool(request_id, params)

        logger.warning(f"Unknown method: {method}")
        return _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    def _call_tool(self, request_id: Any, params: dict) -> dict:
        tool = self._tools.get(params.get("name", ""))
        if tool is None:
            return _error(request_id, INVALID_PARAMS, f"Unknown tool: {params.get('name')}")

        try:
            output = tool.handle(params.get("arguments") or {})
        except ToolError as e:
            return _result(request_id, {
                "content": [{"type": "text", "text": str(e)}],
                "isError": True,
            })
        except Exception as e:
            logger.exception(f"Tool {tool.name} crashed")
            return _error(request_id, INTERNAL_ERROR, f"Tool {tool.name} failed: {e}")

        text = output if isinstance(output, str) else json.dumps(output)
        return _result(request_id, {
            "content": [{"type": "text", "text": text}],
            "isError": False,
        })

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Serve until stdin closes."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout

        for line in stdin:
            line = line.strip()
            if not line:
                continue

            try:
                message = json.loads(line)
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON: {e}")
                _write(stdout, _error(None, PARSE_ERROR, f"Parse error: {e}"))
                continue

            response = self.handle_message(message)
            if response is not None:
                _write(stdout, response)


def _result(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _write(stdout: TextIO, response: dict) -> None:
    stdout.write(json.dumps(response) + "\n")
    stdout.flush()
