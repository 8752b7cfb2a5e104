#!/usr/bin/env python3
"""
MCP Call — connect to MCP servers and call their tools from the shell.

Usage:
    # List bundled servers and their tools
    python scripts/mcp_call.py --list

    # Servers from a YAML registry
    python scripts/mcp_call.py --config servers.yaml --list

    # Servers from Claude Desktop's config (auto-discovered if no path given)
    python scripts/mcp_call.py --claude-config --list

    # Call a tool
    python scripts/mcp_call.py --server echo --tool add --args '{"a": 2, "b": 3}'
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Ensure src/ is on path for development
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mcpbridge import (
    McpError,
    ServerRegistry,
    Settings,
    ToolServerManager,
    default_server_registry,
    discover_claude_config,
)
from mcpbridge.mcp.bridge import format_tool_result

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def build_registry(args) -> ServerRegistry:
    """Resolve which servers to use from the command line."""
    if args.config:
        registry = ServerRegistry()
        registry.load_from_yaml(args.config)
        return registry

    if args.claude_config is not None:
        path = args.claude_config or discover_claude_config()
        if path is None:
            raise FileNotFoundError("No claude_desktop_config.json found")
        registry = ServerRegistry()
        registry.load_from_claude_config(path)
        return registry

    return default_server_registry()


async def run(args) -> int:
    try:
        registry = build_registry(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 2
    server_names = [args.server] if args.server else registry.list_all()

    async with ToolServerManager(settings=Settings.from_env()) as manager:
        for name in server_names:
            server_def = registry.get(name)
            if not server_def:
                print(f"Error: Unknown MCP server '{name}'. Available: {registry.list_all()}")
                return 2
            manager.register_server(server_def)

        await manager.start_all()

        if args.list or not args.tool:
            for name, status in manager.status().items():
                marker = "connected" if status["connected"] else status["state"]
                print(f"\n  {name:<25} [{marker}]")
                for tool in manager.list_tools(name):
                    print(f"    {tool.name:<23} {tool.description}")
            print()
            return 0

        if not args.server:
            print("Error: --tool requires --server")
            return 2

        try:
            arguments = json.loads(args.args) if args.args else {}
        except json.JSONDecodeError as e:
            print(f"Error: --args is not valid JSON: {e}")
            return 2

        try:
            result = await manager.call(args.server, args.tool, arguments)
        except McpError as e:
            print(f"Error: {e}")
            return 1

        print(format_tool_result(result))
        return 1 if result.is_error else 0


def main():
    parser = argparse.ArgumentParser(
        description="Call tools on MCP servers over stdio.",
    )
    parser.add_argument("--list", action="store_true", help="List servers and their tools")
    parser.add_argument("--config", "-c", type=str, help="Path to a YAML server registry")
    parser.add_argument(
        "--claude-config", nargs="?", const="", default=None,
        help="Use Claude Desktop's mcpServers (optionally give the file path)",
    )
    parser.add_argument("--server", "-s", type=str, help="Server to connect to")
    parser.add_argument("--tool", "-t", type=str, help="Tool to call")
    parser.add_argument("--args", "-a", type=str, default=None, help="Tool arguments as JSON")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\nShutting down MCP servers...")
        sys.exit(130)


if __name__ == "__main__":
    main()
