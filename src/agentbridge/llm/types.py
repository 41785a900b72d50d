"""LLM data types shared across providers."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from agentbridge.tools.types import ToolDefinition

logger = logging.getLogger(__name__)


def generate_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def generate_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_tool_args(text: str | dict | None) -> dict[str, Any]:
    """Parse tool-call argument text into a dict.

    Invalid or non-object JSON resolves to an empty dict; this never raises.
    """
    if isinstance(text, dict):
        return text
    if not text:
        return {}
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed tool arguments, using {}: %.200s", text)
        return {}
    if not isinstance(value, dict):
        logger.warning("Tool arguments are not a JSON object, using {}: %.200s", text)
        return {}
    return value


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool-calls"
    CONTENT_FILTER = "content-filter"
    UNKNOWN = "unknown"


@dataclass
class TextPart:
    text: str

    def to_dict(self) -> dict:
        return {"type": "text", "text": self.text}


@dataclass
class ImagePart:
    image: str  # base64, data URI or URL
    mime_type: str | None = None

    def to_dict(self) -> dict:
        d: dict = {"type": "image", "image": self.image}
        if self.mime_type:
            d["mimeType"] = self.mime_type
        return d


@dataclass
class FilePart:
    data: str  # base64, data URI or URL
    mime_type: str
    filename: str | None = None

    def to_dict(self) -> dict:
        d: dict = {"type": "file", "data": self.data, "mimeType": self.mime_type}
        if self.filename:
            d["filename"] = self.filename
        return d


ContentPart = Union[TextPart, ImagePart, FilePart]


def content_part_from_dict(data: dict) -> ContentPart:
    kind = data.get("type")
    if kind == "image":
        return ImagePart(image=data.get("image", ""), mime_type=data.get("mimeType"))
    if kind == "file":
        return FilePart(
            data=data.get("data", ""),
            mime_type=data.get("mimeType", "application/octet-stream"),
            filename=data.get("filename"),
        )
    return TextPart(text=data.get("text", ""))


@dataclass
class Attachment:
    type: str  # "image", "file", "audio", "video"
    data: str | None = None  # base64 or data URI
    url: str | None = None
    mime_type: str | None = None
    filename: str | None = None

    def to_dict(self) -> dict:
        d: dict = {"type": self.type}
        if self.data is not None:
            d["data"] = self.data
        if self.url is not None:
            d["url"] = self.url
        if self.mime_type is not None:
            d["mimeType"] = self.mime_type
        if self.filename is not None:
            d["filename"] = self.filename
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Attachment:
        return cls(
            type=data.get("type", "file"),
            data=data.get("data"),
            url=data.get("url"),
            mime_type=data.get("mimeType") or data.get("mime_type"),
            filename=data.get("filename"),
        )


@dataclass
class ToolCall:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    @property
    def arguments(self) -> str:
        """Arguments serialized as a JSON string."""
        return json.dumps(self.args)

    @classmethod
    def from_arguments(cls, id: str, name: str, arguments: str | dict | None) -> ToolCall:
        return cls(id=id, name=name, args=parse_tool_args(arguments))

    def to_dict(self) -> dict:
        """OpenAI-style ``tool_calls`` entry."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict) -> ToolCall:
        func = data.get("function")
        if func is not None:
            return cls.from_arguments(data.get("id", ""), func.get("name", ""), func.get("arguments"))
        return cls.from_arguments(data.get("id", ""), data.get("name", ""), data.get("args"))


@dataclass
class Message:
    role: str  # "system", "user", "assistant", "tool"
    content: str | list[ContentPart] | None = None
    attachments: list[Attachment] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    def to_dict(self) -> dict:
        """Serialize to the OpenAI-style message dict used on the wire."""
        d: dict = {"role": self.role}
        if isinstance(self.content, list):
            d["content"] = [part.to_dict() for part in self.content]
        else:
            d["content"] = self.content
        if self.attachments:
            d["attachments"] = [a.to_dict() for a in self.attachments]
        if self.tool_calls:
            d["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            d["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            d["name"] = self.name
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        content = data.get("content")
        if isinstance(content, list):
            content = [content_part_from_dict(p) for p in content]
        attachments = data.get("attachments")
        if attachments is None:
            attachments = (data.get("metadata") or {}).get("attachments")
        tool_calls = data.get("tool_calls")
        return cls(
            role=data["role"],
            content=content,
            attachments=[Attachment.from_dict(a) for a in attachments] if attachments else None,
            tool_calls=[ToolCall.from_dict(tc) for tc in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def of(cls, prompt_tokens: int | None, completion_tokens: int | None, total_tokens: int | None = None) -> TokenUsage:
        """Build usage from vendor counts, deriving the total when it is missing."""
        prompt = prompt_tokens or 0
        completion = completion_tokens or 0
        return cls(prompt, completion, total_tokens or prompt + completion)

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TokenUsage:
        return cls(
            prompt_tokens=data.get("prompt_tokens", 0),
            completion_tokens=data.get("completion_tokens", 0),
            total_tokens=data.get("total_tokens", 0),
        )


@dataclass
class RequestConfig:
    """Per-request sampling overrides. ``None`` falls back to the adapter default."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    thinking: bool = False
    thinking_budget: int | None = None


@dataclass
class CompletionRequest:
    messages: list[Message]
    tools: list[ToolDefinition] = field(default_factory=list)
    system_prompt: str | None = None
    config: RequestConfig = field(default_factory=RequestConfig)
    signal: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self.signal is not None and self.signal.is_set()


@dataclass
class CompletionResult:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage | None = None
    finish_reason: FinishReason = FinishReason.UNKNOWN
    thinking: str | None = None
    raw_response: Any = None


@dataclass
class UnifiedToolResult:
    """A tool outcome ready to be formatted for a vendor."""

    tool_call_id: str
    name: str
    content: str
    success: bool = True
    error: str | None = None
