"""
Error types for the MCP client.

Four families, all rooted at McpError:
  - TransportError: the child process is missing, dead, or unwritable
  - RequestTimeoutError: no response before the deadline
  - ProtocolError: the server answered with an error, or sent garbage
  - UsageError: the caller asked for something the session can't do yet
"""

from __future__ import annotations

from typing import Any


class McpError(RuntimeError):
    """Base class for every error raised by mcpbridge."""


class TransportError(McpError):
    """The server process failed to spawn, exited, or its stdin broke."""


class RequestTimeoutError(McpError, TimeoutError):
    """A request got no response within its deadline."""


class ConnectTimeoutError(RequestTimeoutError):
    """The handshake did not finish within the connection timeout."""


class ProtocolError(McpError):
    """JSON-RPC error returned by the server."""

    def __init__(self, message: str, code: int | None = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @classmethod
    def from_error(cls, error: Any) -> ProtocolError:
        if isinstance(error, dict):
            return cls(
                error.get("message") or "MCP error",
                code=error.get("code"),
                data=error.get("data"),
            )
        return cls(str(error))

    def __str__(self) -> str:
        if self.code is not None:
            return f"{self.message} (code {self.code})"
        return self.message


class MalformedMessageError(ProtocolError):
    """A line from the server could not be decoded as a JSON-RPC object."""


class UsageError(McpError):
    """Invalid call for the current state; the transport is never touched."""


class NotReadyError(UsageError):
    """Tool call attempted before the session finished its handshake."""


class UnknownServerError(UsageError, ValueError):
    """No server registered under the requested name."""
