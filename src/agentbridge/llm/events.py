"""Unified stream events emitted by every provider adapter and the agent loop.

Each event serializes to a JSON object with a ``type`` discriminator and
camelCase keys, which is also what goes over the wire as one SSE line.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar

from agentbridge.llm.types import FinishReason, Message, TokenUsage, ToolCall

SSE_DONE = "data: [DONE]\n\n"

_WIRE_NAMES = {
    "requires_action": "requiresAction",
    "finish_reason": "finishReason",
    "tool_calls": "toolCalls",
    "assistant_message": "assistantMessage",
    "max_iterations": "maxIterations",
    "max_iterations_reached": "maxIterationsReached",
}
_FIELD_NAMES = {v: k for k, v in _WIRE_NAMES.items()}


def _to_wire(value: Any) -> Any:
    if isinstance(value, (Message, TokenUsage)):
        return value.to_dict()
    if isinstance(value, ToolCall):
        return {"id": value.id, "name": value.name, "args": value.args}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_to_wire(v) for v in value]
    return value


@dataclass
class StreamEvent:
    """Base class for all unified stream events."""

    type: ClassVar[str] = ""

    def to_dict(self) -> dict:
        d: dict = {"type": self.type}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            d[_WIRE_NAMES.get(f.name, f.name)] = _to_wire(value)
        return d


@dataclass
class MessageStart(StreamEvent):
    type: ClassVar[str] = "message:start"
    id: str = ""


@dataclass
class MessageDelta(StreamEvent):
    type: ClassVar[str] = "message:delta"
    content: str = ""


@dataclass
class MessageEnd(StreamEvent):
    type: ClassVar[str] = "message:end"


@dataclass
class ThinkingStart(StreamEvent):
    type: ClassVar[str] = "thinking:start"


@dataclass
class ThinkingDelta(StreamEvent):
    type: ClassVar[str] = "thinking:delta"
    content: str = ""


@dataclass
class ThinkingEnd(StreamEvent):
    type: ClassVar[str] = "thinking:end"


@dataclass
class ActionStart(StreamEvent):
    type: ClassVar[str] = "action:start"
    id: str = ""
    name: str = ""


@dataclass
class ActionArgs(StreamEvent):
    """Complete JSON argument text for one tool call. Never partial."""

    type: ClassVar[str] = "action:args"
    id: str = ""
    args: str = "{}"


@dataclass
class ActionEnd(StreamEvent):
    type: ClassVar[str] = "action:end"
    id: str = ""
    name: str | None = None
    result: Any = None
    error: str | None = None


@dataclass
class ToolCallsEvent(StreamEvent):
    """Client-side tool calls the caller must execute before resuming."""

    type: ClassVar[str] = "tool_calls"
    tool_calls: list[ToolCall] | None = None
    assistant_message: Message | None = None


@dataclass
class LoopIteration(StreamEvent):
    type: ClassVar[str] = "loop:iteration"
    iteration: int = 0
    max_iterations: int = 0


@dataclass
class LoopComplete(StreamEvent):
    type: ClassVar[str] = "loop:complete"
    iterations: int = 0
    aborted: bool | None = None
    max_iterations_reached: bool | None = None


@dataclass
class ErrorEvent(StreamEvent):
    type: ClassVar[str] = "error"
    message: str = ""
    code: str | None = None


@dataclass
class DoneEvent(StreamEvent):
    type: ClassVar[str] = "done"
    requires_action: bool | None = None
    messages: list[Message] | None = None
    usage: TokenUsage | None = None
    finish_reason: FinishReason | None = None


EVENT_TYPES: dict[str, type[StreamEvent]] = {
    cls.type: cls
    for cls in (
        MessageStart, MessageDelta, MessageEnd,
        ThinkingStart, ThinkingDelta, ThinkingEnd,
        ActionStart, ActionArgs, ActionEnd,
        ToolCallsEvent, LoopIteration, LoopComplete,
        ErrorEvent, DoneEvent,
    )
}

TERMINAL_TYPES = frozenset({ErrorEvent.type, DoneEvent.type})


def event_from_dict(data: dict) -> StreamEvent:
    """Parse a wire-format event dict back into its event class."""
    cls = EVENT_TYPES.get(data.get("type", ""))
    if cls is None:
        raise ValueError(f"Unknown event type: {data.get('type')!r}")

    kwargs: dict = {}
    for key, value in data.items():
        if key == "type":
            continue
        name = _FIELD_NAMES.get(key, key)
        if name == "messages" and value is not None:
            value = [Message.from_dict(m) for m in value]
        elif name == "assistant_message" and value is not None:
            value = Message.from_dict(value)
        elif name == "tool_calls" and value is not None:
            value = [ToolCall.from_dict(tc) for tc in value]
        elif name == "usage" and value is not None:
            value = TokenUsage.from_dict(value)
        elif name == "finish_reason" and value is not None:
            value = FinishReason(value)
        kwargs[name] = value
    return cls(**kwargs)


def format_sse(event: StreamEvent) -> str:
    """Render one event as a Server-Sent Events ``data:`` line."""
    return f"data: {json.dumps(event.to_dict(), default=str)}\n\n"


class EventOrderError(ValueError):
    """Raised when an event sequence violates the ordering rules."""


class EventSequenceChecker:
    """Validate a unified event sequence as it is produced.

    Rules: deltas only inside an open message (or thinking) block, one
    ``action:args`` per ``action:start`` id, and exactly one terminal
    ``done``/``error`` event with nothing after it.
    """

    def __init__(self):
        self._message_open = False
        self._thinking_open = False
        self._started: dict[str, str] = {}
        self._args_seen: set[str] = set()
        self._terminal: StreamEvent | None = None

    def feed(self, event: StreamEvent) -> None:
        if self._terminal is not None:
            raise EventOrderError(f"{event.type} after terminal {self._terminal.type}")

        if isinstance(event, MessageStart):
            if self._message_open:
                raise EventOrderError("message:start while a message is open")
            self._message_open = True
        elif isinstance(event, MessageDelta):
            if not self._message_open:
                raise EventOrderError("message:delta outside message:start/message:end")
        elif isinstance(event, MessageEnd):
            if not self._message_open:
                raise EventOrderError("message:end without message:start")
            self._message_open = False
        elif isinstance(event, ThinkingStart):
            self._thinking_open = True
        elif isinstance(event, ThinkingDelta):
            if not self._thinking_open:
                raise EventOrderError("thinking:delta outside thinking:start/thinking:end")
        elif isinstance(event, ThinkingEnd):
            self._thinking_open = False
        elif isinstance(event, ActionStart):
            if event.id in self._started:
                raise EventOrderError(f"duplicate action:start for {event.id}")
            self._started[event.id] = event.name
        elif isinstance(event, ActionArgs):
            if event.id not in self._started:
                raise EventOrderError(f"action:args before action:start for {event.id}")
            if event.id in self._args_seen:
                raise EventOrderError(f"more than one action:args for {event.id}")
            json.loads(event.args)
            self._args_seen.add(event.id)
        elif event.type in TERMINAL_TYPES:
            self._terminal = event

    def finish(self) -> StreamEvent:
        """Assert the sequence is complete and return its terminal event."""
        if self._terminal is None:
            raise EventOrderError("sequence ended without done or error")
        if not isinstance(self._terminal, ErrorEvent):
            missing = set(self._started) - self._args_seen
            if missing:
                raise EventOrderError(f"action:start without action:args: {sorted(missing)}")
        return self._terminal

    @classmethod
    def check(cls, events: list[StreamEvent]) -> StreamEvent:
        checker = cls()
        for event in events:
            checker.feed(event)
        return checker.finish()
