"""Tests for Anthropic provider."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agentbridge.llm.anthropic_provider import AnthropicProvider
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


def _event(type, **kwargs):
    return SimpleNamespace(type=type, **kwargs)


def _block_start(index, block_type, **kwargs):
    return _event("content_block_start", index=index, content_block=SimpleNamespace(type=block_type, **kwargs))


def _delta(index, delta_type, **kwargs):
    return _event("content_block_delta", index=index, delta=SimpleNamespace(type=delta_type, **kwargs))


def _stream_client(events):
    mock_stream = AsyncMock()
    mock_stream.__aiter__.return_value = events
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=mock_stream)
    return client


def _request(messages=None, **kwargs):
    return CompletionRequest(messages=messages or [Message(role="user", content="Hi")], **kwargs)


class TestAnthropicProvider:
    @pytest.fixture
    def provider(self):
        return AnthropicProvider(api_key="test-key", client=MagicMock())

    def test_provider_initialization(self):
        with patch("agentbridge.llm.anthropic_provider.AsyncAnthropic") as mock_cls:
            provider = AnthropicProvider(api_key="test-key", model="claude-3-5-haiku-20241022")
            assert provider.model == "claude-3-5-haiku-20241022"
            mock_cls.assert_not_called()
            provider.client
            mock_cls.assert_called_once_with(api_key="test-key", base_url=None)

    def test_convert_messages_system_prompt(self, provider):
        request = _request(
            [
                Message(role="system", content="You are a helpful assistant."),
                Message(role="user", content="Hello"),
            ],
            system_prompt="Be terse.",
        )
        system_prompt, converted = provider._convert_messages(request)
        assert system_prompt == "Be terse.\n\nYou are a helpful assistant."
        assert converted == [{"role": "user", "content": "Hello"}]

    def test_convert_messages_empty_system(self, provider):
        system_prompt, converted = provider._convert_messages(_request())
        assert system_prompt == ""
        assert len(converted) == 1

    def test_convert_messages_tool_result(self, provider):
        request = _request([
            Message(role="user", content="Use a tool"),
            Message(role="assistant", content="", tool_calls=[ToolCall(id="call_123", name="test_tool", args={"arg": "value"})]),
            Message(role="tool", content="Tool result", tool_call_id="call_123", name="test_tool"),
        ])
        _, converted = provider._convert_messages(request)
        assert len(converted) == 3

        assert converted[1]["content"] == [
            {"type": "tool_use", "id": "call_123", "name": "test_tool", "input": {"arg": "value"}},
        ]
        tool_msg = converted[2]
        assert tool_msg["role"] == "user"
        assert tool_msg["content"][0]["type"] == "tool_result"
        assert tool_msg["content"][0]["tool_use_id"] == "call_123"
        assert tool_msg["content"][0]["content"] == "Tool result"

    def test_failed_tool_result_is_flagged(self, provider):
        request = _request([
            Message(role="user", content="Look it up"),
            Message(role="assistant", tool_calls=[
                ToolCall(id="t1", name="lookup"),
                ToolCall(id="t2", name="lookup"),
            ]),
            Message(role="tool", content='{"success": false, "error": "not found"}', tool_call_id="t1", name="lookup"),
            Message(role="tool", content='{"success": true, "rows": 2}', tool_call_id="t2", name="lookup"),
        ])

        _, converted = provider._convert_messages(request)

        failed, ok = converted[2]["content"]
        assert failed["tool_use_id"] == "t1"
        assert failed["is_error"] is True
        assert "is_error" not in ok

    def test_tool_results_follow_tool_use_across_interleaved_turns(self, provider):
        request = _request([
            Message(role="user", content="Plan my trip"),
            Message(role="assistant", content="Checking weather", tool_calls=[ToolCall(id="t1", name="weather")]),
            Message(role="tool", content="sunny", tool_call_id="t1", name="weather"),
            Message(role="assistant", tool_calls=[ToolCall(id="t2", name="flights"), ToolCall(id="t3", name="hotels")]),
            Message(role="tool", content="3 flights", tool_call_id="t2", name="flights"),
            Message(role="tool", content="2 hotels", tool_call_id="t3", name="hotels"),
            Message(role="assistant", tool_calls=[ToolCall(id="t4", name="book")]),
            Message(role="tool", content="booked", tool_call_id="t4", name="book"),
            Message(role="user", content="Thanks"),
        ])

        _, converted = provider._convert_messages(request)

        assert [m["role"] for m in converted] == ["user", "assistant", "user", "assistant", "user", "assistant", "user"]
        tool_use_turns = 0
        for i, msg in enumerate(converted):
            if msg["role"] != "assistant":
                continue
            use_ids = [b["id"] for b in msg["content"] if b["type"] == "tool_use"]
            if not use_ids:
                continue
            tool_use_turns += 1
            following = converted[i + 1]
            assert following["role"] == "user"
            leading = following["content"][:len(use_ids)]
            assert [b["type"] for b in leading] == ["tool_result"] * len(use_ids)
            assert [b["tool_use_id"] for b in leading] == use_ids
        assert tool_use_turns == 3

        # Trailing user text joins the last tool-result turn
        assert converted[-1]["content"][-1] == {"type": "text", "text": "Thanks"}

    def test_convert_image_and_pdf(self, provider):
        request = _request([
            Message(
                role="user",
                content="Compare these",
                attachments=[
                    Attachment(type="image", url="https://example.com/a.png"),
                    Attachment(type="file", data="JVBE", mime_type="application/pdf"),
                    Attachment(type="audio", data="AAAA", mime_type="audio/wav"),
                ],
            ),
        ])
        _, [msg] = provider._convert_messages(request)
        assert msg["content"] == [
            {"type": "image", "source": {"type": "url", "url": "https://example.com/a.png"}},
            {"type": "document", "source": {"type": "base64", "media_type": "application/pdf", "data": "JVBE"}},
            {"type": "text", "text": "Compare these"},
        ]

    def test_convert_data_uri_attachment(self, provider):
        attachment = Attachment(type="image", data="data:image/jpeg;base64,/9j/4AAQ")
        _, [msg] = provider._convert_messages(_request([
            Message(role="user", content="What is this?", attachments=[attachment]),
        ]))
        assert msg["content"][0] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/jpeg", "data": "/9j/4AAQ"},
        }
        # The caller's attachment is left as given
        assert attachment.data == "data:image/jpeg;base64,/9j/4AAQ"

    def test_build_kwargs_thinking(self):
        provider = AnthropicProvider(api_key="k", temperature=0.5, thinking_budget=8000, client=MagicMock())
        kwargs = provider._build_kwargs(_request(tools=[server_tool("calc")]))
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 8000}
        assert kwargs["max_tokens"] > 8000
        assert "temperature" not in kwargs
        assert kwargs["tools"][0]["name"] == "calc"

    def test_build_kwargs_plain(self):
        provider = AnthropicProvider(api_key="k", temperature=0.5, client=MagicMock())
        kwargs = provider._build_kwargs(_request(config=RequestConfig(max_tokens=256)))
        assert kwargs["temperature"] == 0.5
        assert kwargs["max_tokens"] == 256
        assert "thinking" not in kwargs
        assert "system" not in kwargs

    async def test_stream_thinking_text_and_tool_use(self):
        client = _stream_client([
            _event("message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=25, output_tokens=1))),
            _block_start(0, "thinking"),
            _delta(0, "thinking_delta", thinking="User wants weather."),
            _event("content_block_stop", index=0),
            _block_start(1, "text"),
            _delta(1, "text_delta", text="Let me check."),
            _event("content_block_stop", index=1),
            _block_start(2, "tool_use", id="toolu_1", name="get_weather"),
            _delta(2, "input_json_delta", partial_json='{"city":'),
            _delta(2, "input_json_delta", partial_json=' "Paris"}'),
            _event("content_block_stop", index=2),
            _event("message_delta", delta=SimpleNamespace(stop_reason="tool_use"), usage=SimpleNamespace(output_tokens=40)),
            _event("message_stop"),
        ])
        provider = AnthropicProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        done = EventSequenceChecker.check(events)
        assert [type(e) for e in events] == [
            MessageStart,
            ThinkingStart,
            ThinkingDelta,
            ThinkingEnd,
            MessageDelta,
            ActionStart,
            ActionArgs,
            MessageEnd,
            DoneEvent,
        ]
        assert events[6].args == '{"city": "Paris"}'
        assert done.finish_reason == FinishReason.TOOL_CALLS
        assert done.usage == TokenUsage(25, 40, 65)
        assert client.messages.create.call_args.kwargs["stream"] is True

    async def test_stream_malformed_tool_json(self):
        client = _stream_client([
            _block_start(0, "tool_use", id="toolu_1", name="broken"),
            _delta(0, "input_json_delta", partial_json='{"a": tru'),
            _event("message_delta", delta=SimpleNamespace(stop_reason="max_tokens"), usage=None),
        ])
        provider = AnthropicProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        # No content_block_stop arrived: args are flushed at the end
        [args] = [e for e in events if isinstance(e, ActionArgs)]
        assert args.args == "{}"
        assert events[-1].finish_reason == FinishReason.LENGTH

    async def test_cancelled_mid_stream_closes_response(self):
        signal = asyncio.Event()
        stream = CancellingStream([
            _block_start(0, "text"),
            _delta(0, "text_delta", text="partial"),
            _delta(0, "text_delta", text="dropped"),
        ], signal)
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=stream)
        provider = AnthropicProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request(signal=signal)))

        assert not any(isinstance(e, (DoneEvent, ErrorEvent)) for e in events)
        assert not any(isinstance(e, MessageDelta) and e.content == "dropped" for e in events)
        stream.close.assert_awaited_once()

    async def test_stream_error(self):
        class Overloaded(Exception):
            status_code = 529

        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=Overloaded("Overloaded"))
        provider = AnthropicProvider(api_key="k", client=client)

        events = await collect(provider.stream(_request()))

        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].code == "ANTHROPIC_HTTP_529"

    async def test_complete(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="thinking", thinking="Hmm."),
                SimpleNamespace(type="text", text="Calling tool."),
                SimpleNamespace(type="tool_use", id="toolu_9", name="calc", input={"a": 1}),
            ],
            stop_reason="tool_use",
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        )
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=response)
        provider = AnthropicProvider(api_key="k", client=client)

        result = await provider.complete(_request())

        assert result.text == "Calling tool."
        assert result.thinking == "Hmm."
        assert result.tool_calls == [ToolCall(id="toolu_9", name="calc", args={"a": 1})]
        assert result.finish_reason == FinishReason.TOOL_CALLS
        assert result.usage == TokenUsage(10, 5, 15)

    async def test_complete_error(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("boom"))
        provider = AnthropicProvider(api_key="k", client=client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.complete(_request())
        assert exc_info.value.code == "ANTHROPIC_ERROR"
