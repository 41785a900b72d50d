"""Tool definitions, execution context and results."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

SERVER = "server"
CLIENT = "client"


class AIResponseMode(str, Enum):
    """How much of a tool result the model gets to see."""

    NONE = "none"
    BRIEF = "brief"
    FULL = "full"


@dataclass
class AIContent:
    """One multimodal item returned to the model in place of a JSON result."""

    type: str  # "text" or "image"
    text: str | None = None
    media_type: str | None = None
    data: str | None = None  # base64


@dataclass
class ToolDirective:
    """Per-result override of what the model is told.

    ``content`` always wins; otherwise ``mode`` and ``context`` replace the
    tool's configured policy for this one result.
    """

    mode: AIResponseMode | None = None
    context: str | None = None
    content: list[AIContent] | None = None


@dataclass
class ToolResponse:
    success: bool = True
    data: Any = None
    error: str | None = None
    directive: ToolDirective | None = None

    def to_dict(self) -> dict:
        d: dict = {"success": self.success}
        if self.data is not None:
            d["data"] = self.data
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class ToolContext:
    """Passed to every server-side handler."""

    signal: asyncio.Event | None = None
    thread_id: str | None = None
    tool_call_id: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.signal is not None and self.signal.is_set()


ToolHandler = Callable[..., Union[Any, Awaitable[Any]]]
AIContextFn = Callable[[Any, dict], str]


@dataclass
class ToolDefinition:
    name: str
    description: str
    input_schema: dict = field(default_factory=lambda: {"type": "object", "properties": {}})
    location: str = CLIENT
    handler: ToolHandler | None = None
    ai_response_mode: AIResponseMode | None = None
    ai_context: str | AIContextFn | None = None
    title: str | None = None

    def __post_init__(self):
        if self.location not in (SERVER, CLIENT):
            raise ValueError(f"Tool {self.name!r}: location must be 'server' or 'client'")
        if self.location == SERVER and self.handler is None:
            raise ValueError(f"Tool {self.name!r}: server tools require a handler")
        if isinstance(self.ai_response_mode, str):
            self.ai_response_mode = AIResponseMode(self.ai_response_mode)

    @property
    def is_server(self) -> bool:
        return self.location == SERVER and self.handler is not None

    @classmethod
    def from_declaration(cls, data: dict) -> ToolDefinition:
        """Build a client tool from a caller-supplied declaration.

        Accepts ``inputSchema``/``input_schema``/``parameters`` for the schema
        and the OpenAI ``{"type": "function", "function": {...}}`` envelope.
        """
        if data.get("type") == "function" and "function" in data:
            data = data["function"]
        schema = (
            data.get("inputSchema")
            or data.get("input_schema")
            or data.get("parameters")
            or {"type": "object", "properties": {}}
        )
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            input_schema=copy.deepcopy(schema),
            location=CLIENT,
            title=data.get("title"),
        )
