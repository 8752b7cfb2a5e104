"""
Configuration — MCP server definitions and client settings.

Servers can be declared in a thin YAML file:

    calendar:
      command: node
      args: [build/index.js]
      env:
        GOOGLE_OAUTH_CREDENTIALS: ./gcp-oauth.keys.json
    echo:
      command: [python, -m, mcpbridge.mcp.servers.echo]

or read straight from a Claude Desktop claude_desktop_config.json
(its "mcpServers" section uses the same command/args/env shape).

Timeouts and retry behavior come from Settings, which can be overridden
through MCP_* environment variables.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ── Client settings ─────────────────────────────────────────

@dataclass
class Settings:
    """
    Timeouts and limits for MCP connections.

    Fields:
        request_timeout: Deadline for steady-state requests, in seconds
        handshake_timeout: Deadline for the initialize call (first start is slow)
        connect_timeout: Deadline for spawn + full handshake
        kill_grace: Seconds between SIGTERM and SIGKILL on disconnect
        connect_attempts: How many times the manager tries to connect a server
        retry_delay: Pause between connection attempts
        max_pending: Cap on outstanding requests per connection (None = unbounded)
    """
    request_timeout: float = 15.0
    handshake_timeout: float = 60.0
    connect_timeout: float = 60.0
    kill_grace: float = 5.0
    connect_attempts: int = 2
    retry_delay: float = 5.0
    max_pending: int | None = None
    protocol_version: str = "2024-11-05"
    client_name: str = "mcp-bridge"
    client_version: str = "0.1.0"

    ENV_VARS = {
        "request_timeout": ("MCP_REQUEST_TIMEOUT", float),
        "handshake_timeout": ("MCP_HANDSHAKE_TIMEOUT", float),
        "connect_timeout": ("MCP_CONNECT_TIMEOUT", float),
        "kill_grace": ("MCP_KILL_GRACE", float),
        "connect_attempts": ("MCP_CONNECT_ATTEMPTS", int),
        "retry_delay": ("MCP_RETRY_DELAY", float),
        "max_pending": ("MCP_MAX_PENDING", int),
    }

    def __post_init__(self):
        for name in ("request_timeout", "handshake_timeout", "connect_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("kill_grace", "retry_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")
        if self.connect_attempts < 1:
            raise ValueError(f"connect_attempts must be at least 1, got {self.connect_attempts}")
        if self.max_pending is not None and self.max_pending < 1:
            raise ValueError(f"max_pending must be at least 1, got {self.max_pending}")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> Settings:
        """Build settings from MCP_* environment variables."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for attr, (var, cast) in cls.ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                values[attr] = cast(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {var}: {raw!r}") from None
        values.update(overrides)
        return cls(**values)


# ── MCP Server Registry ────────────────────────────────────

@dataclass
class ServerDef:
    """Definition of an MCP tool server."""
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    description: str = ""

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    @classmethod
    def from_dict(cls, name: str, config: dict) -> ServerDef:
        """
        Create a ServerDef from a config mapping.

        `command` may be a string (with `args` alongside) or a full argv list.
        """
        command = config.get("command")
        args = list(config.get("args") or [])
        if isinstance(command, (list, tuple)):
            if not command:
                raise ValueError(f"Server '{name}' has an empty command")
            command, args = str(command[0]), [str(a) for a in command[1:]] + args
        if not command:
            raise ValueError(f"Server '{name}' has no command")

        env = config.get("env") or {}
        if not isinstance(env, dict):
            raise ValueError(f"Server '{name}' env must be a mapping, got {type(env).__name__}")

        return cls(
            name=name,
            command=str(command),
            args=[str(a) for a in args],
            env={str(k): str(v) for k, v in env.items()},
            description=config.get("description", ""),
        )


class ServerRegistry:
    """
    Registry of available MCP tool servers.

    Maps server names to their launch commands, so callers
    can reference servers by name.
    """

    def __init__(self):
        self._servers: dict[str, ServerDef] = {}

    def register(self, server_def: ServerDef) -> None:
        """Register a server definition."""
        self._servers[server_def.name] = server_def
        logger.info(f"Registered server def: {server_def.name}")

    def get(self, name: str) -> ServerDef | None:
        return self._servers.get(name)

    def list_all(self) -> list[str]:
        return list(self._servers.keys())

    @property
    def count(self) -> int:
        return len(self._servers)

    def __iter__(self):
        return iter(self._servers.values())

    def load_from_dict(self, servers: dict[str, dict]) -> int:
        """
        Load server definitions from a dict.

        Entries without a command are skipped with a warning.
        """
        count = 0
        for name, config in servers.items():
            if not isinstance(config, dict) or not config.get("command"):
                logger.warning(f"Server '{name}' has no command, skipping")
                continue

            self.register(ServerDef.from_dict(name, config))
            count += 1

        return count

    def load_from_yaml(self, path: str | Path) -> int:
        """Load server definitions from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Server registry not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if isinstance(data, dict):
            # Accept either a bare mapping or one nested under mcpServers
            return self.load_from_dict(data.get("mcpServers", data))

        raise ValueError(f"Server registry YAML must be a mapping, got {type(data).__name__}")

    def load_from_claude_config(self, path: str | Path) -> int:
        """Load the mcpServers section of a Claude Desktop config file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Claude config not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        servers = data.get("mcpServers") if isinstance(data, dict) else None
        if not isinstance(servers, dict):
            raise ValueError(f"No mcpServers section in {path}")

        logger.info(f"Found {len(servers)} MCP servers in {path}")
        return self.load_from_dict(servers)


def claude_config_paths(home: str | Path | None = None) -> list[Path]:
    """Standard locations of claude_desktop_config.json, in search order."""
    home = Path(home) if home else Path.home()
    return [
        home / ".config" / "claude" / "claude_desktop_config.json",
        home / "Library" / "Application Support" / "Claude" / "claude_desktop_config.json",
    ]


def discover_claude_config(home: str | Path | None = None) -> Path | None:
    """Return the first Claude Desktop config that exists, if any."""
    for path in claude_config_paths(home):
        if path.exists():
            return path
        logger.debug(f"Config file not found at {path}")
    return None


def default_server_registry() -> ServerRegistry:
    """
    Create a ServerRegistry pre-loaded with the bundled MCP servers.

      - echo: diagnostic server (echo, add, sleep, fail, exit)
    """
    registry = ServerRegistry()
    registry.register(ServerDef(
        name="echo",
        command=sys.executable,
        args=["-m", "mcpbridge.mcp.servers.echo"],
        description="Diagnostic server that echoes and adds",
    ))
    return registry
