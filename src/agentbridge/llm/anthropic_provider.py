"""Anthropic (Claude) adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

from anthropic import AsyncAnthropic

from agentbridge.llm.base import close_stream
from agentbridge.llm.content import (
    attachment_media_type,
    is_pdf,
    message_media,
    message_text,
    tool_result_failure,
)
from agentbridge.llm.errors import ProviderError, error_code
from agentbridge.llm.events import (
    ActionArgs,
    ActionStart,
    DoneEvent,
    ErrorEvent,
    MessageDelta,
    MessageEnd,
    MessageStart,
    StreamEvent,
    ThinkingDelta,
    ThinkingEnd,
    ThinkingStart,
)
from agentbridge.llm.formatters import get_formatter
from agentbridge.llm.types import (
    CompletionRequest,
    CompletionResult,
    FinishReason,
    Message,
    TokenUsage,
    UnifiedToolResult,
    generate_message_id,
    parse_tool_args,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_THINKING_BUDGET = 10000


def _int(value: Any) -> int:
    return value if isinstance(value, int) else 0


class AnthropicProvider:
    """Anthropic Claude adapter with streaming, tool calling and extended thinking."""

    provider = "anthropic"
    error_prefix = "ANTHROPIC"
    default_model = "claude-3-5-sonnet-20241022"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        thinking_budget: int | None = None,
        client: Any = None,
    ):
        self.model = model or self.default_model
        self._api_key = api_key
        self._base_url = base_url
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._thinking_budget = thinking_budget
        self._client = client
        self._formatter = get_formatter(self.provider)

    @property
    def client(self) -> Any:
        """The SDK client, created on first use."""
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self._api_key, base_url=self._base_url)
        return self._client

    def _content_blocks(self, msg: Message) -> list[dict]:
        blocks: list[dict] = []
        for attachment in message_media(msg):
            media_type = attachment_media_type(attachment)
            if attachment.type == "image":
                kind = "image"
            elif is_pdf(attachment):
                kind = "document"
            else:
                logger.warning("anthropic: %s attachment (%s) not supported, skipping", attachment.type, media_type)
                continue
            if attachment.url:
                source = {"type": "url", "url": attachment.url}
            else:
                source = {"type": "base64", "media_type": media_type, "data": attachment.data or ""}
            blocks.append({"type": kind, "source": source})
        text = message_text(msg)
        if text:
            blocks.append({"type": "text", "text": text})
        return blocks

    def _convert_messages(self, request: CompletionRequest) -> tuple[str, list[dict]]:
        """Convert unified messages to Anthropic format.

        Tool results are held back and flushed as one user turn right before
        the next user or assistant turn, so every ``tool_use`` turn is
        immediately followed by its ``tool_result`` blocks.

        Returns (system_prompt, messages_list)
        """
        system_parts = [request.system_prompt] if request.system_prompt else []
        result: list[dict] = []
        pending: list[UnifiedToolResult] = []

        def flush() -> bool:
            if not pending:
                return False
            result.extend(self._formatter.build_tool_result_message(list(pending)))
            pending.clear()
            return True

        for msg in request.messages:
            if msg.role == "system":
                text = message_text(msg)
                if text:
                    system_parts.append(text)
                continue

            if msg.role == "tool":
                text = message_text(msg)
                error = tool_result_failure(text)
                pending.append(UnifiedToolResult(
                    tool_call_id=msg.tool_call_id or "",
                    name=msg.name or "",
                    content=text,
                    success=error is None,
                    error=error,
                ))
                continue

            flushed = flush()

            if msg.role == "assistant":
                text = message_text(msg)
                if msg.tool_calls:
                    result.append(self._formatter.build_assistant_tool_message(msg.tool_calls, text or None))
                elif text:
                    result.append({"role": "assistant", "content": text})
                continue

            blocks = self._content_blocks(msg)
            if flushed:
                # Follow-up user input shares the tool-result turn
                result[-1]["content"].extend(blocks)
            elif len(blocks) == 1 and blocks[0]["type"] == "text":
                result.append({"role": "user", "content": blocks[0]["text"]})
            elif blocks:
                result.append({"role": "user", "content": blocks})

        flush()
        return "\n\n".join(system_parts), result

    def _build_kwargs(self, request: CompletionRequest) -> dict:
        config = request.config
        system_prompt, messages = self._convert_messages(request)
        kwargs: dict = {
            "model": config.model or self.model,
            "messages": messages,
            "max_tokens": config.max_tokens or self._max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if request.tools:
            kwargs["tools"] = self._formatter.transform_tools(request.tools)

        if config.thinking or self._thinking_budget is not None:
            budget = config.thinking_budget or self._thinking_budget or DEFAULT_THINKING_BUDGET
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # The budget counts against max_tokens and must be smaller
            if kwargs["max_tokens"] <= budget:
                kwargs["max_tokens"] = budget + DEFAULT_MAX_TOKENS
        else:
            temperature = config.temperature if config.temperature is not None else self._temperature
            if temperature is not None:
                kwargs["temperature"] = temperature
        return kwargs

    def _finish_reason(self, raw: str | None, has_tool_calls: bool) -> FinishReason:
        reason = self._formatter.map_finish_reason(raw)
        if has_tool_calls and reason == FinishReason.UNKNOWN:
            return FinishReason.TOOL_CALLS
        return reason

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Non-streaming chat completion."""
        try:
            response = await self.client.messages.create(**self._build_kwargs(request))
        except Exception as e:
            raise ProviderError(str(e) or type(e).__name__, error_code(self.error_prefix, e)) from e

        tool_calls = self._formatter.parse_tool_calls(response)
        thinking = "".join(
            block.thinking for block in response.content if block.type == "thinking"
        )
        return CompletionResult(
            text=self._formatter.extract_text_content(response),
            tool_calls=tool_calls,
            usage=TokenUsage.of(_int(response.usage.input_tokens), _int(response.usage.output_tokens)),
            finish_reason=self._finish_reason(response.stop_reason, bool(tool_calls)),
            thinking=thinking or None,
            raw_response=response,
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Streaming chat completion yielding unified events."""
        if request.cancelled:
            return
        yield MessageStart(id=generate_message_id())

        try:
            stream = await self.client.messages.create(**self._build_kwargs(request), stream=True)

            # Tool-use blocks being accumulated, keyed by content block index
            tool_blocks: dict[int, dict] = {}
            thinking_blocks: set[int] = set()
            stop_reason: str | None = None
            input_tokens = 0
            output_tokens = 0

            async for event in stream:
                if request.cancelled:
                    logger.debug("anthropic stream cancelled")
                    await close_stream(stream)
                    return

                if event.type == "message_start":
                    usage = getattr(event.message, "usage", None)
                    input_tokens = _int(getattr(usage, "input_tokens", 0))
                    output_tokens = _int(getattr(usage, "output_tokens", 0))

                elif event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        tool_blocks[event.index] = {"id": block.id, "name": block.name, "args": "", "done": False}
                        yield ActionStart(id=block.id, name=block.name)
                    elif block.type == "thinking":
                        thinking_blocks.add(event.index)
                        yield ThinkingStart()

                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        yield MessageDelta(content=delta.text)
                    elif delta.type == "thinking_delta":
                        yield ThinkingDelta(content=delta.thinking)
                    elif delta.type == "input_json_delta":
                        if event.index in tool_blocks:
                            tool_blocks[event.index]["args"] += delta.partial_json

                elif event.type == "content_block_stop":
                    if event.index in tool_blocks:
                        block = tool_blocks[event.index]
                        block["done"] = True
                        yield ActionArgs(id=block["id"], args=json.dumps(parse_tool_args(block["args"])))
                    elif event.index in thinking_blocks:
                        thinking_blocks.discard(event.index)
                        yield ThinkingEnd()

                elif event.type == "message_delta":
                    if event.delta.stop_reason:
                        stop_reason = event.delta.stop_reason
                    usage = getattr(event, "usage", None)
                    if usage is not None:
                        output_tokens = _int(getattr(usage, "output_tokens", 0)) or output_tokens

            for block in tool_blocks.values():
                if not block["done"]:
                    yield ActionArgs(id=block["id"], args=json.dumps(parse_tool_args(block["args"])))
            for _ in thinking_blocks:
                yield ThinkingEnd()

            yield MessageEnd()
            yield DoneEvent(
                finish_reason=self._finish_reason(stop_reason, bool(tool_blocks)),
                usage=TokenUsage.of(input_tokens, output_tokens),
            )

        except Exception as e:
            logger.warning("anthropic stream failed: %s", e)
            yield ErrorEvent(message=str(e) or type(e).__name__, code=error_code(self.error_prefix, e))
