"""
Data models for mcpbridge.

Enums and dataclasses for session state and decoded MCP payloads.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ── Enums ────────────────────────────────────────────────────

class SessionState(str, Enum):
    UNSTARTED = "unstarted"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


# ── Tool descriptors ─────────────────────────────────────────

@dataclass
class ToolDescriptor:
    """One entry of a tools/list result."""
    name: str
    description: str = ""
    input_schema: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> ToolDescriptor:
        if not isinstance(data, dict) or not data.get("name"):
            raise ValueError(f"Tool descriptor requires a 'name' field, got {data!r}")
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            input_schema=data.get("inputSchema") or {},
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


# ── Tool results ─────────────────────────────────────────────

@dataclass
class ContentBlock:
    """A single item of a tools/call result's content list."""
    type: str
    text: str | None = None
    data: str | None = None  # base64 payload for image/audio blocks
    mime_type: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> ContentBlock:
        if not isinstance(data, dict):
            return cls(type="text", text=str(data))
        return cls(
            type=data.get("type", "text"),
            text=data.get("text"),
            data=data.get("data"),
            mime_type=data.get("mimeType"),
            raw=data,
        )


@dataclass
class ToolResult:
    """
    Decoded tools/call result.

    Servers answer with {content: [...], isError, structuredContent}; anything
    that doesn't look like that is kept whole in `structured`.
    """
    content: list[ContentBlock] = field(default_factory=list)
    is_error: bool = False
    structured: Any = None
    raw: Any = None

    @classmethod
    def from_result(cls, result: Any) -> ToolResult:
        if isinstance(result, dict) and isinstance(result.get("content"), list):
            return cls(
                content=[ContentBlock.from_dict(c) for c in result["content"]],
                is_error=bool(result.get("isError", False)),
                structured=result.get("structuredContent"),
                raw=result,
            )
        return cls(structured=result, raw=result)

    @property
    def text(self) -> str:
        return "\n".join(c.text for c in self.content if c.type == "text" and c.text is not None)

    def json(self) -> Any:
        """Structured payload if present, else the text content decoded as JSON."""
        if self.structured is not None:
            return self.structured
        return json.loads(self.text)
