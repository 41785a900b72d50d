"""Agent loop: model turn -> server tool execution -> next turn."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable

from agentbridge.core.session import ConversationState
from agentbridge.core.tool_registry import ToolRegistry
from agentbridge.core.tool_results import build_tool_result_for_ai, to_jsonable
from agentbridge.llm.base import ProviderAdapter
from agentbridge.llm.errors import ProviderError
from agentbridge.llm.events import (
    ActionArgs,
    ActionEnd,
    ActionStart,
    DoneEvent,
    ErrorEvent,
    LoopComplete,
    LoopIteration,
    MessageDelta,
    MessageEnd,
    MessageStart,
    StreamEvent,
    ThinkingDelta,
    ThinkingEnd,
    ThinkingStart,
    ToolCallsEvent,
)
from agentbridge.llm.types import (
    CompletionRequest,
    FinishReason,
    Message,
    RequestConfig,
    TokenUsage,
    ToolCall,
    generate_message_id,
    parse_tool_args,
)
from agentbridge.tools.types import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 20


@dataclass
class _Turn:
    """What one model turn produced, filled in by a turn driver."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage | None = None
    finish_reason: FinishReason | None = None
    error: ErrorEvent | None = None
    cancelled: bool = False


TurnDriver = Callable[[CompletionRequest, _Turn], AsyncIterator[StreamEvent]]


class AgentLoop:
    """Drives an adapter through repeated model turns.

    Flow:
    1. Call the model with the merged tool set
    2. Server tool calls: execute in call order, append results, go to 1
    3. Only client tool calls: emit ``tool_calls`` and ``done(requiresAction)``
    4. No tool calls: append the answer and emit ``done``
    5. Guard: max_iterations bounds the number of model turns
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        tools: list[ToolDefinition] | None = None,
        registry: ToolRegistry | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        system_prompt: str | None = None,
        config: RequestConfig | None = None,
        thread_id: str | None = None,
        headers: dict[str, str] | None = None,
        tool_context: dict | None = None,
        include_usage: bool = False,
    ):
        self._adapter = adapter
        self._tools = list(tools or [])
        self._by_name = {t.name: t for t in self._tools}
        self._registry = registry or ToolRegistry()
        self._max_iterations = max_iterations
        self._system_prompt = system_prompt
        self._config = config or RequestConfig()
        self._thread_id = thread_id
        self._headers = headers or {}
        self._tool_context = tool_context or {}
        self._include_usage = include_usage

    async def run(self, state: ConversationState) -> AsyncIterator[StreamEvent]:
        """Execute the loop over streamed model turns."""
        async for event in self._loop(state, self._stream_turn):
            yield event

    async def run_non_streaming(self, state: ConversationState) -> AsyncIterator[StreamEvent]:
        """Execute the loop over request/response turns.

        Emits the same event shapes as :meth:`run`. Adapters without
        ``complete`` are driven through their stream instead.
        """
        driver = self._complete_turn if hasattr(self._adapter, "complete") else self._stream_turn
        async for event in self._loop(state, driver):
            yield event

    def _is_server_call(self, tc: ToolCall) -> bool:
        t = self._by_name.get(tc.name)
        return t is not None and t.is_server

    async def _loop(self, state: ConversationState, drive_turn: TurnDriver) -> AsyncIterator[StreamEvent]:
        while state.iteration < self._max_iterations:
            if state.cancelled:
                logger.info("Agent loop cancelled after %d iterations", state.iteration)
                return

            state.iteration += 1
            logger.debug("Agent iteration %d/%d", state.iteration, self._max_iterations)
            yield LoopIteration(iteration=state.iteration, max_iterations=self._max_iterations)

            turn = _Turn()
            request = CompletionRequest(
                messages=list(state.messages),
                tools=self._tools,
                system_prompt=self._system_prompt,
                config=self._config,
                signal=state.signal,
            )
            async for event in drive_turn(request, turn):
                yield event

            if turn.cancelled or state.cancelled:
                logger.info("Agent loop cancelled during iteration %d", state.iteration)
                return
            if turn.error is not None:
                yield turn.error
                return
            state.add_usage(turn.usage)

            if not turn.tool_calls:
                if turn.text:
                    state.append(Message(role="assistant", content=turn.text))
                yield self._done(state, requires_action=False, finish_reason=turn.finish_reason)
                return

            server_calls: list[ToolCall] = []
            client_calls: list[ToolCall] = []
            for tc in turn.tool_calls:
                if self._is_server_call(tc):
                    server_calls.append(tc)
                else:
                    if tc.name not in self._by_name:
                        logger.warning("Model called undeclared tool %s; deferring to client", tc.name)
                    client_calls.append(tc)

            if not server_calls:
                assistant = Message(role="assistant", content=turn.text or None, tool_calls=client_calls)
                state.append(assistant)
                yield ToolCallsEvent(tool_calls=client_calls, assistant_message=assistant)
                yield self._done(state, requires_action=True, finish_reason=turn.finish_reason)
                return

            if client_calls:
                # The model asks again for these once it has the server results
                logger.info(
                    "Deferring client tools %s until server tools finish",
                    ", ".join(tc.name for tc in client_calls),
                )

            results: list[Message] = []
            # One at a time; results are appended in call order
            for tc in server_calls:
                if state.cancelled:
                    logger.info("Agent loop cancelled before tool %s", tc.name)
                    return
                async for event in self._execute(state, tc, results):
                    yield event

            assistant = Message(role="assistant", content=turn.text or None, tool_calls=server_calls)
            state.append(assistant, *results)

        logger.info("Agent loop reached max iterations (%d)", self._max_iterations)
        yield LoopComplete(iterations=state.iteration, max_iterations_reached=True)
        yield self._done(state, requires_action=False)

    async def _execute(
        self, state: ConversationState, tc: ToolCall, results: list[Message]
    ) -> AsyncIterator[StreamEvent]:
        tool = self._by_name[tc.name]
        context = ToolContext(
            signal=state.signal,
            thread_id=self._thread_id,
            tool_call_id=tc.id,
            headers=dict(self._headers),
            data=dict(self._tool_context),
        )
        logger.info("Executing tool: %s", tc.name)
        execution = await self._registry.execute(tool, tc.args, context)

        if execution.error is not None:
            yield ActionEnd(id=tc.id, name=tc.name, error=execution.error)
        else:
            yield ActionEnd(id=tc.id, name=tc.name, result=to_jsonable(execution.result))

        results.append(Message(
            role="tool",
            content=build_tool_result_for_ai(tool, execution.result, tc.args),
            tool_call_id=tc.id,
            name=tc.name,
        ))

    def _done(
        self,
        state: ConversationState,
        requires_action: bool,
        finish_reason: FinishReason | None = None,
    ) -> DoneEvent:
        return DoneEvent(
            requires_action=requires_action,
            messages=list(state.new_messages),
            usage=state.usage if self._include_usage else None,
            finish_reason=finish_reason,
        )

    async def _stream_turn(self, request: CompletionRequest, turn: _Turn) -> AsyncIterator[StreamEvent]:
        """Forward one streamed turn, intercepting its terminal event."""
        calls: dict[str, ToolCall] = {}
        terminated = False
        try:
            async for event in self._adapter.stream(request):
                if isinstance(event, DoneEvent):
                    turn.usage = event.usage
                    turn.finish_reason = event.finish_reason
                    terminated = True
                    continue
                if isinstance(event, ErrorEvent):
                    turn.error = event
                    terminated = True
                    continue

                if isinstance(event, MessageDelta):
                    turn.text += event.content
                elif isinstance(event, ActionStart):
                    calls[event.id] = ToolCall(id=event.id, name=event.name)
                elif isinstance(event, ActionArgs) and event.id in calls:
                    calls[event.id].args = parse_tool_args(event.args)
                yield event
        except Exception as e:
            logger.exception("Adapter stream raised")
            turn.error = ErrorEvent(message=str(e) or type(e).__name__, code="STREAM_ERROR")
            return

        turn.tool_calls = list(calls.values())
        if not terminated:
            # Adapters end silently only when cancelled
            turn.cancelled = True

    async def _complete_turn(self, request: CompletionRequest, turn: _Turn) -> AsyncIterator[StreamEvent]:
        """Run one request/response turn and synthesize its stream events."""
        try:
            result = await self._adapter.complete(request)
        except ProviderError as e:
            turn.error = ErrorEvent(message=str(e), code=e.code)
            return
        except Exception as e:
            logger.exception("Adapter completion raised")
            turn.error = ErrorEvent(message=str(e) or type(e).__name__, code="COMPLETION_ERROR")
            return

        if request.cancelled:
            turn.cancelled = True
            return

        yield MessageStart(id=generate_message_id())
        if result.thinking:
            yield ThinkingStart()
            yield ThinkingDelta(content=result.thinking)
            yield ThinkingEnd()
        if result.text:
            yield MessageDelta(content=result.text)
        for tc in result.tool_calls:
            yield ActionStart(id=tc.id, name=tc.name)
            yield ActionArgs(id=tc.id, args=tc.arguments)
        yield MessageEnd()

        turn.text = result.text
        turn.tool_calls = list(result.tool_calls)
        turn.usage = result.usage
        turn.finish_reason = result.finish_reason
