"""
Echo MCP tool server — a diagnostic server for exercising clients.

Provides: echo, add, sleep, fail, exit.

ECHO_SERVER_MODE simulates misbehaving servers:
    crash   exit with code 3 before reading anything
    silent  read requests but never answer
    noisy   emit a malformed line, a notification and a stray response first

Run as:
    python -m mcpbridge.mcp.servers.echo
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Any

from mcpbridge.mcp.server import StdioToolServer, ToolError, ToolHandler

logger = logging.getLogger(__name__)


class EchoTool(ToolHandler):
    name = "echo"
    description = "Return the given text unchanged."
    parameters = {
        "text": {"type": "string", "description": "Text to echo back"},
    }
    required = ["text"]

    def handle(self, params: dict[str, Any]) -> str:
        return str(params.get("text", ""))


class AddTool(ToolHandler):
    name = "add"
    description = "Add two numbers."
    parameters = {
        "a": {"type": "number", "description": "First operand"},
        "b": {"type": "number", "description": "Second operand"},
    }
    required = ["a", "b"]

    def handle(self, params: dict[str, Any]) -> dict:
        try:
            a, b = float(params["a"]), float(params["b"])
        except (KeyError, TypeError, ValueError) as e:
            raise ToolError(f"add needs numeric 'a' and 'b': {e}") from e
        return {"a": a, "b": b, "result": a + b}


class SleepTool(ToolHandler):
    name = "sleep"
    description = "Wait before answering. Blocks the whole server."
    parameters = {
        "seconds": {"type": "number", "description": "How long to wait"},
    }

    def handle(self, params: dict[str, Any]) -> dict:
        seconds = float(params.get("seconds", 1))
        time.sleep(seconds)
        return {"slept": seconds}


class FailTool(ToolHandler):
    name = "fail"
    description = "Always report a tool error."
    parameters = {
        "message": {"type": "string", "description": "Error text"},
    }

    def handle(self, params: dict[str, Any]) -> Any:
        raise ToolError(params.get("message") or "requested failure")


class ExitTool(ToolHandler):
    name = "exit"
    description = "Terminate the server process without answering."
    parameters = {
        "code": {"type": "integer", "description": "Exit code"},
    }

    def handle(self, params: dict[str, Any]) -> Any:
        sys.stdout.flush()
        os._exit(int(params.get("code", 0)))


def _emit_noise() -> None:
    sys.stdout.write("this is not json\n")
    sys.stdout.write(json.dumps({
        "jsonrpc": "2.0",
        "method": "notifications/message",
        "params": {"level": "info", "data": "echo server starting"},
    }) + "\n")
    sys.stdout.write(json.dumps({"jsonrpc": "2.0", "id": 9999, "result": "stray"}) + "\n")
    sys.stdout.flush()


def main():
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
    mode = os.environ.get("ECHO_SERVER_MODE", "")

    if mode == "crash":
        logger.error("Crashing on startup as requested")
        sys.exit(3)

    if mode == "silent":
        logger.info("Silent mode: reading without answering")
        for _ in sys.stdin:
            pass
        return

    if mode == "noisy":
        _emit_noise()

    server = StdioToolServer(name="echo", version="0.1.0")
    server.register(EchoTool())
    server.register(AddTool())
    server.register(SleepTool())
    server.register(FailTool())
    server.register(ExitTool())
    server.run()


if __name__ == "__main__":
    main()
