"""Test fixtures for agentbridge."""

from __future__ import annotations

import json
from typing import AsyncIterator
from unittest.mock import AsyncMock

import pytest

from agentbridge.core.config import AgentConfig, Settings
from agentbridge.core.tool_registry import ToolRegistry
from agentbridge.llm.events import (
    ActionArgs,
    ActionStart,
    DoneEvent,
    ErrorEvent,
    MessageDelta,
    MessageEnd,
    MessageStart,
    StreamEvent,
)
from agentbridge.llm.types import (
    CompletionRequest,
    CompletionResult,
    FinishReason,
    Message,
    TokenUsage,
    ToolCall,
    parse_tool_args,
)
from agentbridge.tools.types import SERVER, ToolDefinition


def text_turn(text: str, usage: TokenUsage | None = None) -> list[StreamEvent]:
    """Events of a model turn that answers with text."""
    events: list[StreamEvent] = [MessageStart(id="msg_test")]
    for i in range(0, len(text), 10):
        events.append(MessageDelta(content=text[i:i + 10]))
    events.append(MessageEnd())
    events.append(DoneEvent(finish_reason=FinishReason.STOP, usage=usage))
    return events


def tool_turn(calls: list[ToolCall], usage: TokenUsage | None = None, text: str = "") -> list[StreamEvent]:
    """Events of a model turn that calls tools."""
    events: list[StreamEvent] = [MessageStart(id="msg_test")]
    if text:
        events.append(MessageDelta(content=text))
    for tc in calls:
        events.append(ActionStart(id=tc.id, name=tc.name))
    for tc in calls:
        events.append(ActionArgs(id=tc.id, args=tc.arguments))
    events.append(MessageEnd())
    events.append(DoneEvent(finish_reason=FinishReason.TOOL_CALLS, usage=usage))
    return events


def error_turn(message: str = "boom", code: str = "MOCK_ERROR") -> list[StreamEvent]:
    return [MessageStart(id="msg_test"), ErrorEvent(message=message, code=code)]


class CancellingStream:
    """SDK-like stream that sets ``signal`` once the first item was read."""

    def __init__(self, items: list, signal):
        self._items = items
        self._signal = signal
        self.close = AsyncMock()

    async def __aiter__(self):
        for i, item in enumerate(self._items):
            if i == 1:
                self._signal.set()
            yield item


class MockAdapter:
    """Scripted adapter: each call replays the next turn (the last one repeats)."""

    provider = "mock"
    model = "mock-model"

    def __init__(self, turns: list[list[StreamEvent]] | None = None):
        self._turns = turns or [text_turn("Mock response")]
        self._call_index = 0
        self.calls: list[CompletionRequest] = []

    def _next(self, request: CompletionRequest) -> list[StreamEvent]:
        self.calls.append(request)
        turn = self._turns[min(self._call_index, len(self._turns) - 1)]
        self._call_index += 1
        return turn

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        for event in self._next(request):
            yield event

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        result = CompletionResult()
        calls: dict[str, ToolCall] = {}
        for event in self._next(request):
            if isinstance(event, MessageDelta):
                result.text += event.content
            elif isinstance(event, ActionStart):
                calls[event.id] = ToolCall(id=event.id, name=event.name)
            elif isinstance(event, ActionArgs):
                calls[event.id].args = parse_tool_args(event.args)
            elif isinstance(event, DoneEvent):
                result.usage = event.usage
                result.finish_reason = event.finish_reason or FinishReason.UNKNOWN
            elif isinstance(event, ErrorEvent):
                raise RuntimeError(event.message)
        result.tool_calls = list(calls.values())
        return result


def server_tool(name: str, handler=None, **kwargs) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=f"{name} tool",
        input_schema=kwargs.pop("input_schema", {"type": "object", "properties": {}}),
        location=SERVER,
        handler=handler or (lambda args, ctx: {"ok": True, "args": args}),
        **kwargs,
    )


def client_tool(name: str) -> ToolDefinition:
    return ToolDefinition(name=name, description=f"{name} tool")


async def collect(events: AsyncIterator[StreamEvent]) -> list[StreamEvent]:
    return [e async for e in events]


def sse_payloads(lines: list[str]) -> list:
    """Decode ``data:`` lines, keeping the ``[DONE]`` sentinel as a string."""
    out = []
    for line in lines:
        body = line[len("data: "):].strip()
        out.append(body if body == "[DONE]" else json.loads(body))
    return out


@pytest.fixture
def user_messages():
    return [Message(role="user", content="Hello")]


@pytest.fixture
def mock_adapter():
    return MockAdapter()


@pytest.fixture
def tool_registry():
    return ToolRegistry()


@pytest.fixture
def settings():
    return Settings(agent=AgentConfig(max_iterations=5))
