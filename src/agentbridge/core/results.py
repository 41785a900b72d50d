"""Consumption wrappers around an agent-loop event sequence."""

from __future__ import annotations

import dataclasses
import inspect
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Union

from agentbridge.core.session import ConversationState
from agentbridge.llm.events import (
    SSE_DONE,
    ActionArgs,
    ActionEnd,
    ActionStart,
    DoneEvent,
    ErrorEvent,
    MessageDelta,
    StreamEvent,
    ToolCallsEvent,
    format_sse,
)
from agentbridge.llm.types import Message, TokenUsage, ToolCall, parse_tool_args


@dataclass
class OnFinishResult:
    messages: list[Message]
    usage: TokenUsage


OnFinish = Callable[[OnFinishResult], Union[None, Awaitable[None]]]


async def call_on_finish(on_finish: OnFinish | None, state: ConversationState) -> None:
    if on_finish is None:
        return
    outcome = on_finish(OnFinishResult(messages=list(state.new_messages), usage=state.usage))
    if inspect.isawaitable(outcome):
        await outcome


class StreamResult:
    """A single-use stream of unified events for an external caller.

    Token usage is removed from forwarded ``done`` events unless
    ``include_usage`` is set; the callback always receives it.
    """

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        state: ConversationState,
        on_finish: OnFinish | None = None,
        include_usage: bool = False,
    ):
        self._events = events
        self.state = state
        self._on_finish = on_finish
        self._include_usage = include_usage
        self._consumed = False

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("StreamResult can only be consumed once")
        self._consumed = True

        async for event in self._events:
            if isinstance(event, DoneEvent) and not self._include_usage:
                event = dataclasses.replace(event, usage=None)
            yield event

        await call_on_finish(self._on_finish, self.state)

    async def to_sse(self) -> AsyncIterator[str]:
        """SSE lines, one per event, terminated by ``data: [DONE]``."""
        async for event in self:
            yield format_sse(event)
        yield SSE_DONE

    async def text_stream(self) -> AsyncIterator[str]:
        """Only the assistant text deltas."""
        async for event in self:
            if isinstance(event, MessageDelta):
                yield event.content

    async def collect(self) -> GenerateResult:
        """Drain the stream into an aggregate result."""
        result = await GenerateResult.from_events(self)
        result.usage = self.state.usage
        return result


@dataclass
class GenerateResult:
    """Aggregate outcome of one agent-loop request."""

    text: str = ""
    messages: list[Message] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[dict] = field(default_factory=list)
    requires_action: bool = False
    usage: TokenUsage | None = None
    error: dict | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    async def from_events(cls, events: AsyncIterable[StreamEvent]) -> GenerateResult:
        result = cls()
        calls: dict[str, ToolCall] = {}
        async for event in events:
            if isinstance(event, MessageDelta):
                result.text += event.content
            elif isinstance(event, ActionStart):
                calls[event.id] = ToolCall(id=event.id, name=event.name)
            elif isinstance(event, ActionArgs) and event.id in calls:
                calls[event.id].args = parse_tool_args(event.args)
            elif isinstance(event, ActionEnd):
                entry: dict[str, Any] = {"id": event.id, "name": event.name}
                if event.error is not None:
                    entry["error"] = event.error
                else:
                    entry["result"] = event.result
                result.tool_results.append(entry)
            elif isinstance(event, ToolCallsEvent):
                result.requires_action = True
            elif isinstance(event, DoneEvent):
                result.requires_action = bool(event.requires_action)
                result.messages = list(event.messages or [])
                if event.usage is not None:
                    result.usage = event.usage
            elif isinstance(event, ErrorEvent):
                result.error = {"message": event.message, "code": event.code}
        result.tool_calls = list(calls.values())
        return result

    def to_response(self, include_usage: bool = False) -> dict:
        """JSON body for a non-streaming response."""
        body: dict = {
            "success": self.success,
            "text": self.text,
            "messages": [m.to_dict() for m in self.messages],
            "toolCalls": [{"id": tc.id, "name": tc.name, "args": tc.args} for tc in self.tool_calls],
            "toolResults": self.tool_results,
            "requiresAction": self.requires_action,
        }
        if include_usage and self.usage is not None:
            body["usage"] = self.usage.to_dict()
        if self.error is not None:
            body["error"] = self.error
        return body
