"""Tests for the native Gemini adapter."""

import asyncio
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agentbridge.llm.errors import ProviderError
from agentbridge.llm.events import (
    ActionArgs,
    ActionStart,
    DoneEvent,
    ErrorEvent,
    EventSequenceChecker,
    MessageDelta,
    MessageEnd,
    MessageStart,
    ThinkingDelta,
    ThinkingEnd,
    ThinkingStart,
)
from agentbridge.llm.google_provider import GoogleProvider
from agentbridge.llm.types import (
    Attachment,
    CompletionRequest,
    FinishReason,
    Message,
    RequestConfig,
    TokenUsage,
    ToolCall,
)

from tests.conftest import CancellingStream, collect, server_tool


def _chunk(parts, finish=None, usage=None):
    chunk = {"candidates": [{"content": {"role": "model", "parts": parts}, "finish_reason": finish}]}
    if usage is not None:
        chunk["usage_metadata"] = {
            "prompt_token_count": usage[0],
            "candidates_token_count": usage[1],
            "total_token_count": usage[0] + usage[1],
        }
    return chunk


def _stream_client(chunks):
    mock_stream = AsyncMock()
    mock_stream.__aiter__.return_value = chunks
    client = MagicMock()
    client.aio.models.generate_content_stream = AsyncMock(return_value=mock_stream)
    return client


def _request(messages=None, **kwargs):
    return CompletionRequest(messages=messages or [Message(role="user", content="Hi")], **kwargs)


class TestGoogleProvider:
    @pytest.fixture
    def provider(self):
        return GoogleProvider(api_key="test-key", client=MagicMock())

    def test_lazy_client(self):
        with patch("agentbridge.llm.google_provider.genai") as mock_genai:
            provider = GoogleProvider(api_key="g-key")
            mock_genai.Client.assert_not_called()
            assert provider.client is mock_genai.Client.return_value
            mock_genai.Client.assert_called_once_with(api_key="g-key")
        assert provider.model == "gemini-2.0-flash"

    def test_convert_messages(self, provider):
        request = _request(
            [
                Message(role="system", content="Extra rules."),
                Message(role="user", content="Weather in Oslo?"),
                Message(role="assistant", tool_calls=[ToolCall(id="call_1", name="get_weather", args={"city": "Oslo"})]),
                Message(role="tool", content='{"temp": 3}', tool_call_id="call_1"),
                Message(role="user", content="And tomorrow?"),
            ],
            system_prompt="Be terse.",
        )

        system, contents = provider._convert_messages(request)

        assert system == "Be terse.\n\nExtra rules."
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"] == [{"function_call": {"name": "get_weather", "args": {"city": "Oslo"}}}]
        # Tool name is recovered from the earlier call; the next user turn merges in
        assert contents[2]["parts"] == [
            {"function_response": {"name": "get_weather", "response": {"temp": 3}}},
            {"text": "And tomorrow?"},
        ]

    def test_conversation_must_start_with_user(self, provider):
        _, contents = provider._convert_messages(_request([Message(role="assistant", content="Welcome back")]))
        assert contents[0]["role"] == "user"
        assert contents[1] == {"role": "model", "parts": [{"text": "Welcome back"}]}

    def test_inline_media(self, provider):
        payload = base64.b64encode(b"PNGDATA").decode()
        request = _request([
            Message(
                role="user",
                content="Describe",
                attachments=[
                    Attachment(type="image", data=payload, mime_type="image/png"),
                    Attachment(type="image", url="https://example.com/x.png"),
                ],
            ),
        ])

        _, [content] = provider._convert_messages(request)

        assert content["parts"] == [
            {"text": "Describe"},
            {"inline_data": {"mime_type": "image/png", "data": b"PNGDATA"}},
        ]

    def test_inline_media_from_data_uri(self, provider):
        payload = base64.b64encode(b"PNGDATA").decode()
        request = _request([
            Message(
                role="user",
                content="Describe",
                attachments=[Attachment(type="image", data=f"data:image/png;base64,{payload}")],
            ),
        ])

        _, [content] = provider._convert_messages(request)

        assert content["parts"][1] == {"inline_data": {"mime_type": "image/png", "data": b"PNGDATA"}}

    def test_build_kwargs(self):
        provider = GoogleProvider(api_key="k", temperature=0.3, thinking_budget=1024, client=MagicMock())
        kwargs = provider._build_kwargs(_request(
            tools=[server_tool("calc", input_schema={"type": "object", "properties": {"x": {"type": "number"}}})],
            system_prompt="sys",
            config=RequestConfig(max_tokens=500),
        ))
        config = kwargs["config"]
        assert kwargs["model"] == "gemini-2.0-flash"
        assert config["system_instruction"] == "sys"
        assert config["temperature"] == 0.3
        assert config["max_output_tokens"] == 500
        assert config["thinking_config"] == {"include_thoughts": True, "thinking_budget": 1024}
        assert config["tools"][0]["function_declarations"][0]["name"] == "calc"

    def test_build_kwargs_without_options(self, provider):
        assert provider._build_kwargs(_request())["config"] is None

    async def test_stream_text_with_thoughts(self):
        client = _stream_client([
            _chunk([{"text": "Considering", "thought": True}]),
            _chunk([{"text": "Hello"}]),
            _chunk([{"text": " there"}], finish=SimpleNamespace(name="STOP"), usage=(8, 4)),
        ])
        provider = GoogleProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        done = EventSequenceChecker.check(events)
        assert [type(e) for e in events] == [
            MessageStart,
            ThinkingStart,
            ThinkingDelta,
            ThinkingEnd,
            MessageDelta,
            MessageDelta,
            MessageEnd,
            DoneEvent,
        ]
        assert done.finish_reason == FinishReason.STOP
        assert done.usage == TokenUsage(8, 4, 12)

    async def test_stream_function_calls(self):
        client = _stream_client([
            _chunk([
                {"function_call": {"name": "get_weather", "args": {"city": "Lima"}}},
                {"function_call": {"id": "fc_2", "name": "get_time", "args": None}},
            ], finish="STOP"),
        ])
        provider = GoogleProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        done = EventSequenceChecker.check(events)
        starts = [e for e in events if isinstance(e, ActionStart)]
        args = [e for e in events if isinstance(e, ActionArgs)]
        assert [s.name for s in starts] == ["get_weather", "get_time"]
        assert starts[0].id.startswith("call_")
        assert starts[1].id == "fc_2"
        assert [a.args for a in args] == ['{"city": "Lima"}', "{}"]
        # STOP is reported for function calls as well
        assert done.finish_reason == FinishReason.TOOL_CALLS

    async def test_stream_safety_stop(self):
        client = _stream_client([_chunk([], finish="SAFETY")])
        provider = GoogleProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        assert events[-1].finish_reason == FinishReason.CONTENT_FILTER

    async def test_cancelled_mid_stream_closes_response(self):
        signal = asyncio.Event()
        stream = CancellingStream([_chunk([{"text": "partial"}]), _chunk([{"text": "dropped"}], finish="STOP")], signal)
        client = MagicMock()
        client.aio.models.generate_content_stream = AsyncMock(return_value=stream)
        provider = GoogleProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request(signal=signal)))

        assert [e.content for e in events if isinstance(e, MessageDelta)] == ["partial"]
        assert not any(isinstance(e, (DoneEvent, ErrorEvent)) for e in events)
        stream.close.assert_awaited_once()

    async def test_stream_error(self):
        class ClientError(Exception):
            code = 400

        client = MagicMock()
        client.aio.models.generate_content_stream = AsyncMock(side_effect=ClientError("API key not valid"))
        provider = GoogleProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].code == "GOOGLE_HTTP_400"

    async def test_complete(self):
        response = {
            "candidates": [{
                "content": {"parts": [
                    {"text": "plan", "thought": True},
                    {"text": "Calling"},
                    {"function_call": {"id": "fc_1", "name": "calc", "args": {"a": 2}}},
                ]},
                "finish_reason": "STOP",
            }],
            "usage_metadata": {"prompt_token_count": 6, "candidates_token_count": 3, "total_token_count": 9},
        }
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=response)
        provider = GoogleProvider(api_key="k", client=client)

        result = await provider.complete(_request())

        assert result.text == "Calling"
        assert result.thinking == "plan"
        assert result.tool_calls == [ToolCall(id="fc_1", name="calc", args={"a": 2})]
        assert result.finish_reason == FinishReason.TOOL_CALLS
        assert result.usage == TokenUsage(6, 3, 9)

    async def test_complete_error(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("down"))
        provider = GoogleProvider(api_key="k", client=client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.complete(_request())
        assert exc_info.value.code == "GOOGLE_ERROR"
