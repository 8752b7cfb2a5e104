"""
Newline framing for MCP's stdio transport.

The server writes one JSON-RPC object per line. Reads from a pipe arrive in
arbitrary chunks, so a message can be split across reads or several messages
can arrive in one. LineFramer buffers the unterminated tail between calls.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from ..errors import MalformedMessageError

logger = logging.getLogger(__name__)


def decode_message(line: str) -> dict[str, Any]:
    """Parse one framed line into a JSON-RPC object."""
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedMessageError(f"Invalid JSON: {e}") from e

    if not isinstance(message, dict):
        raise MalformedMessageError(
            f"Expected a JSON object, got {type(message).__name__}"
        )
    return message


class LineFramer:
    """Splits a stream of text or bytes into newline-terminated lines."""

    def __init__(self):
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.malformed_count = 0

    @property
    def pending(self) -> str:
        """Unterminated text waiting for more input."""
        return self._buffer

    def feed(self, chunk: str | bytes) -> list[str]:
        """Append a chunk and return every line it completed, in order."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def messages(self, chunk: str | bytes) -> list[dict[str, Any]]:
        """
        Feed a chunk and decode the completed lines.

        Blank lines are skipped. Lines that fail to decode are logged and
        dropped so one bad write from the server doesn't take down the
        connection.
        """
        decoded = []
        for line in self.feed(chunk):
            if not line.strip():
                continue
            try:
                decoded.append(decode_message(line))
            except MalformedMessageError as e:
                self.malformed_count += 1
                logger.warning(f"Dropping malformed MCP message: {e}: {line[:200]!r}")
        return decoded
