"""OpenAI chat-completions adapter.

Also the base for every vendor that speaks the OpenAI wire protocol
(xAI, Azure OpenAI, Ollama, Gemini's OpenAI-compatible endpoint).
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from agentbridge.llm.base import close_stream
from agentbridge.llm.content import (
    attachment_media_type,
    is_pdf,
    message_media,
    message_text,
    to_data_uri,
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
    generate_tool_call_id,
    parse_tool_args,
)

logger = logging.getLogger(__name__)


def _usage(raw: Any) -> TokenUsage | None:
    if raw is None:
        return None
    return TokenUsage.of(raw.prompt_tokens, raw.completion_tokens, raw.total_tokens)


class OpenAIProvider:
    """OpenAI chat completion adapter with streaming and tool calling."""

    provider = "openai"
    error_prefix = "OPENAI"
    default_model = "gpt-4o"
    default_base_url: str | None = None
    supports_documents = True

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        client: Any = None,
    ):
        self.model = model or self.default_model
        self._api_key = api_key
        self._base_url = base_url or self.default_base_url
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = client
        self._formatter = get_formatter(self.provider)

    @property
    def client(self) -> Any:
        """The SDK client, created on first use."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> Any:
        return AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)

    def _convert_content(self, msg: Message) -> str | list[dict]:
        """Plain text, or content parts when the message carries media."""
        text = message_text(msg)
        media = message_media(msg)
        if not media:
            return text

        parts: list[dict] = []
        if text:
            parts.append({"type": "text", "text": text})
        for attachment in media:
            if attachment.type == "image":
                url = attachment.url or to_data_uri(attachment.data or "", attachment_media_type(attachment))
                parts.append({"type": "image_url", "image_url": {"url": url, "detail": "auto"}})
            elif self.supports_documents and is_pdf(attachment) and attachment.data:
                parts.append({
                    "type": "file",
                    "file": {
                        "filename": attachment.filename or "document.pdf",
                        "file_data": to_data_uri(attachment.data, "application/pdf"),
                    },
                })
            else:
                logger.warning(
                    "%s: %s attachment (%s) not supported, skipping",
                    self.provider, attachment.type, attachment_media_type(attachment),
                )
        return parts or text

    def _convert_messages(self, request: CompletionRequest) -> list[dict]:
        """Convert unified messages to the OpenAI chat format."""
        result: list[dict] = []
        if request.system_prompt:
            result.append({"role": "system", "content": request.system_prompt})

        for msg in request.messages:
            if msg.role == "tool":
                result.extend(self._formatter.build_tool_result_message([
                    UnifiedToolResult(
                        tool_call_id=msg.tool_call_id or "",
                        name=msg.name or "",
                        content=message_text(msg),
                    )
                ]))
            elif msg.role == "assistant" and msg.tool_calls:
                result.append(self._formatter.build_assistant_tool_message(
                    msg.tool_calls, message_text(msg) or None
                ))
            else:
                result.append({"role": msg.role, "content": self._convert_content(msg)})
        return result

    def _build_kwargs(self, request: CompletionRequest) -> dict:
        config = request.config
        kwargs: dict = {
            "model": config.model or self.model,
            "messages": self._convert_messages(request),
        }
        temperature = config.temperature if config.temperature is not None else self._temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        max_tokens = config.max_tokens or self._max_tokens
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if request.tools:
            kwargs["tools"] = self._formatter.transform_tools(request.tools)
        return kwargs

    def _finish_reason(self, raw: str | None, has_tool_calls: bool) -> FinishReason:
        reason = self._formatter.map_finish_reason(raw)
        # Some compatible servers report "stop" even when they called tools
        if has_tool_calls and reason in (FinishReason.STOP, FinishReason.UNKNOWN):
            return FinishReason.TOOL_CALLS
        return reason

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Non-streaming chat completion."""
        try:
            response = await self.client.chat.completions.create(**self._build_kwargs(request))
        except Exception as e:
            raise ProviderError(str(e) or type(e).__name__, error_code(self.error_prefix, e)) from e

        tool_calls = self._formatter.parse_tool_calls(response)
        reasoning = getattr(response.choices[0].message, "reasoning_content", None)
        return CompletionResult(
            text=self._formatter.extract_text_content(response),
            tool_calls=tool_calls,
            usage=_usage(response.usage),
            finish_reason=self._finish_reason(self._formatter.get_stop_reason(response), bool(tool_calls)),
            thinking=reasoning if isinstance(reasoning, str) else None,
            raw_response=response,
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Streaming chat completion yielding unified events."""
        if request.cancelled:
            return
        yield MessageStart(id=generate_message_id())

        try:
            kwargs = self._build_kwargs(request)
            kwargs["stream"] = True
            kwargs["stream_options"] = {"include_usage": True}
            stream = await self.client.chat.completions.create(**kwargs)

            calls: list[dict] = []
            by_index: dict[int, dict] = {}
            raw_finish: str | None = None
            usage: TokenUsage | None = None
            thinking = False

            async for chunk in stream:
                if request.cancelled:
                    logger.debug("%s stream cancelled", self.provider)
                    await close_stream(stream)
                    return

                if getattr(chunk, "usage", None) is not None:
                    usage = _usage(chunk.usage)
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                reasoning = getattr(delta, "reasoning_content", None)
                if isinstance(reasoning, str) and reasoning:
                    if not thinking:
                        thinking = True
                        yield ThinkingStart()
                    yield ThinkingDelta(content=reasoning)

                if delta.content:
                    if thinking:
                        thinking = False
                        yield ThinkingEnd()
                    yield MessageDelta(content=delta.content)

                for tc in delta.tool_calls or []:
                    func = tc.function
                    current = by_index.get(tc.index)
                    if current is None or (tc.id and tc.id != current["id"]):
                        current = {
                            "id": tc.id or generate_tool_call_id(),
                            "name": (func.name if func else None) or "",
                            "args": "",
                        }
                        calls.append(current)
                        by_index[tc.index] = current
                        yield ActionStart(id=current["id"], name=current["name"])
                    elif func and func.name and not current["name"]:
                        current["name"] = func.name
                    if func and func.arguments:
                        current["args"] += func.arguments

                if choice.finish_reason:
                    raw_finish = choice.finish_reason

            if thinking:
                yield ThinkingEnd()
            for call in calls:
                yield ActionArgs(id=call["id"], args=json.dumps(parse_tool_args(call["args"])))
            yield MessageEnd()
            yield DoneEvent(finish_reason=self._finish_reason(raw_finish, bool(calls)), usage=usage)

        except Exception as e:
            logger.warning("%s stream failed: %s", self.provider, e)
            yield ErrorEvent(message=str(e) or type(e).__name__, code=error_code(self.error_prefix, e))
