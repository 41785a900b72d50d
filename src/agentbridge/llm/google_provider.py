"""Google Gemini adapters.

``GoogleProvider`` talks to the native Gemini API through google-genai.
``GoogleOpenAIProvider`` uses Gemini's OpenAI-compatible endpoint instead.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, AsyncIterator

from google import genai

from agentbridge.llm.base import close_stream
from agentbridge.llm.content import attachment_media_type, message_media, message_text
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
from agentbridge.llm.formatters.base import get_field
from agentbridge.llm.formatters.gemini_formatter import reason_name
from agentbridge.llm.openai_provider import OpenAIProvider
from agentbridge.llm.types import (
    CompletionRequest,
    CompletionResult,
    FinishReason,
    Message,
    TokenUsage,
    UnifiedToolResult,
    generate_message_id,
    generate_tool_call_id,
)

logger = logging.getLogger(__name__)

GOOGLE_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_THINKING_BUDGET = 8192


def _usage(metadata: Any) -> TokenUsage | None:
    if metadata is None:
        return None
    return TokenUsage.of(
        get_field(metadata, "prompt_token_count"),
        get_field(metadata, "candidates_token_count"),
        get_field(metadata, "total_token_count"),
    )


class GoogleProvider:
    """Native Gemini adapter with streaming, function calling and thoughts."""

    provider = "google"
    error_prefix = "GOOGLE"
    default_model = "gemini-2.0-flash"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        thinking_budget: int | None = None,
        safety_settings: list[dict] | None = None,
        client: Any = None,
    ):
        self.model = model or self.default_model
        self._api_key = api_key
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._thinking_budget = thinking_budget
        self._safety_settings = safety_settings
        self._client = client
        self._formatter = get_formatter(self.provider)

    @property
    def client(self) -> Any:
        """The SDK client, created on first use."""
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _media_parts(self, msg: Message) -> list[dict]:
        parts = []
        for attachment in message_media(msg):
            # Only inline data is supported; remote URLs would need a fetch
            if not attachment.data:
                logger.warning("google: URL-based attachments not supported, skipping %s", attachment.url)
                continue
            parts.append({
                "inline_data": {
                    "mime_type": attachment_media_type(attachment),
                    "data": base64.b64decode(attachment.data),
                }
            })
        return parts

    def _convert_messages(self, request: CompletionRequest) -> tuple[str, list[dict]]:
        """Convert unified messages to Gemini contents.

        Returns (system_instruction, contents)
        """
        system_parts = [request.system_prompt] if request.system_prompt else []
        tool_names: dict[str, str] = {}
        contents: list[dict] = []

        for msg in request.messages:
            text = message_text(msg)
            if msg.role == "system":
                if text:
                    system_parts.append(text)
                continue

            if msg.role == "tool":
                # functionResponse is matched by name, not id
                name = msg.name or tool_names.get(msg.tool_call_id or "", "tool")
                contents.extend(self._formatter.build_tool_result_message([
                    UnifiedToolResult(tool_call_id=msg.tool_call_id or "", name=name, content=text)
                ]))
                continue

            if msg.role == "assistant" and msg.tool_calls:
                for tc in msg.tool_calls:
                    tool_names[tc.id] = tc.name
                contents.append(self._formatter.build_assistant_tool_message(msg.tool_calls, text or None))
                continue

            parts: list[dict] = [{"text": text}] if text else []
            if msg.role == "user":
                parts.extend(self._media_parts(msg))
            if parts:
                contents.append({"role": "model" if msg.role == "assistant" else "user", "parts": parts})

        if not contents or contents[0]["role"] != "user":
            contents.insert(0, {"role": "user", "parts": [{"text": ""}]})

        # Roles must alternate
        merged: list[dict] = []
        for content in contents:
            if merged and merged[-1]["role"] == content["role"]:
                merged[-1]["parts"].extend(content["parts"])
            else:
                merged.append({"role": content["role"], "parts": list(content["parts"])})

        return "\n\n".join(system_parts), merged

    def _build_kwargs(self, request: CompletionRequest) -> dict:
        config = request.config
        system_instruction, contents = self._convert_messages(request)

        gen_config: dict = {}
        if system_instruction:
            gen_config["system_instruction"] = system_instruction
        if request.tools:
            gen_config["tools"] = self._formatter.transform_tools(request.tools)
        temperature = config.temperature if config.temperature is not None else self._temperature
        if temperature is not None:
            gen_config["temperature"] = temperature
        max_tokens = config.max_tokens or self._max_tokens
        if max_tokens:
            gen_config["max_output_tokens"] = max_tokens
        if config.thinking or self._thinking_budget is not None:
            gen_config["thinking_config"] = {
                "include_thoughts": True,
                "thinking_budget": config.thinking_budget or self._thinking_budget or DEFAULT_THINKING_BUDGET,
            }
        if self._safety_settings:
            gen_config["safety_settings"] = self._safety_settings

        return {
            "model": config.model or self.model,
            "contents": contents,
            "config": gen_config or None,
        }

    def _finish_reason(self, raw: str | None, has_tool_calls: bool) -> FinishReason:
        # Gemini reports STOP for function calls too
        if has_tool_calls:
            return FinishReason.TOOL_CALLS
        return self._formatter.map_finish_reason(raw)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Non-streaming content generation."""
        try:
            response = await self.client.aio.models.generate_content(**self._build_kwargs(request))
        except Exception as e:
            raise ProviderError(str(e) or type(e).__name__, error_code(self.error_prefix, e)) from e

        tool_calls = self._formatter.parse_tool_calls(response)
        thinking = "".join(
            get_field(part, "text") or ""
            for part in self._formatter.response_parts(response)
            if get_field(part, "thought")
        )
        return CompletionResult(
            text=self._formatter.extract_text_content(response),
            tool_calls=tool_calls,
            usage=_usage(get_field(response, "usage_metadata")),
            finish_reason=self._finish_reason(self._formatter.get_stop_reason(response), bool(tool_calls)),
            thinking=thinking or None,
            raw_response=response,
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Streaming content generation yielding unified events."""
        if request.cancelled:
            return
        yield MessageStart(id=generate_message_id())

        try:
            stream = await self.client.aio.models.generate_content_stream(**self._build_kwargs(request))

            raw_finish: str | None = None
            usage: TokenUsage | None = None
            thinking = False
            called = False

            async for chunk in stream:
                if request.cancelled:
                    logger.debug("google stream cancelled")
                    await close_stream(stream)
                    return

                metadata = get_field(chunk, "usage_metadata")
                if metadata is not None:
                    usage = _usage(metadata)

                candidates = get_field(chunk, "candidates") or []
                if not candidates:
                    continue
                candidate = candidates[0]
                if get_field(candidate, "finish_reason") is not None:
                    raw_finish = reason_name(get_field(candidate, "finish_reason"))

                for part in get_field(get_field(candidate, "content"), "parts") or []:
                    text = get_field(part, "text")
                    if text and get_field(part, "thought"):
                        if not thinking:
                            thinking = True
                            yield ThinkingStart()
                        yield ThinkingDelta(content=text)
                        continue
                    if thinking:
                        thinking = False
                        yield ThinkingEnd()
                    if text:
                        yield MessageDelta(content=text)

                    fc = get_field(part, "function_call")
                    if fc is not None:
                        # Gemini sends each call complete in one part
                        called = True
                        call_id = get_field(fc, "id") or generate_tool_call_id()
                        yield ActionStart(id=call_id, name=get_field(fc, "name", ""))
                        yield ActionArgs(id=call_id, args=json.dumps(dict(get_field(fc, "args") or {})))

            if thinking:
                yield ThinkingEnd()
            yield MessageEnd()
            yield DoneEvent(finish_reason=self._finish_reason(raw_finish, called), usage=usage)

        except Exception as e:
            logger.warning("google stream failed: %s", e)
            yield ErrorEvent(message=str(e) or type(e).__name__, code=error_code(self.error_prefix, e))


class GoogleOpenAIProvider(OpenAIProvider):
    """Gemini through its OpenAI-compatible chat completions endpoint."""

    provider = "google-openai"
    error_prefix = "GOOGLE"
    default_model = "gemini-2.0-flash"
    default_base_url = GOOGLE_OPENAI_BASE_URL
    supports_documents = False
