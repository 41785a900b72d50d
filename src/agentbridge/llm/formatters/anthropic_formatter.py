"""Anthropic messages-API tool format."""

from __future__ import annotations

import copy
from typing import Any

from agentbridge.llm.content import data_uri_media_type, multimodal_tool_content, strip_data_uri
from agentbridge.llm.formatters.base import get_field
from agentbridge.llm.types import FinishReason, ToolCall, UnifiedToolResult, generate_tool_call_id
from agentbridge.tools.types import ToolDefinition

FINISH_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "refusal": FinishReason.CONTENT_FILTER,
}


def image_block(url: str) -> dict:
    """Anthropic image block from a URL or data URI."""
    if url.startswith("data:"):
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": data_uri_media_type(url) or "image/png",
                "data": strip_data_uri(url),
            },
        }
    return {"type": "image", "source": {"type": "url", "url": url}}


def tool_result_content(content: str) -> str | list[dict]:
    """Text stays text; serialized multimodal parts become content blocks."""
    parts = multimodal_tool_content(content)
    if parts is None:
        return content
    blocks = []
    for part in parts:
        if part["type"] == "image_url":
            blocks.append(image_block(part.get("image_url", {}).get("url", "")))
        else:
            blocks.append({"type": "text", "text": part.get("text", "")})
    return blocks


class AnthropicFormatter:
    name = "anthropic"

    def transform_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": copy.deepcopy(t.input_schema),
            }
            for t in tools
        ]

    def parse_tool_calls(self, response: Any) -> list[ToolCall]:
        return [
            ToolCall.from_arguments(
                get_field(block, "id") or generate_tool_call_id(),
                get_field(block, "name", ""),
                get_field(block, "input"),
            )
            for block in get_field(response, "content") or []
            if get_field(block, "type") == "tool_use"
        ]

    def format_tool_results(self, results: list[UnifiedToolResult]) -> list[dict]:
        blocks = []
        for r in results:
            block: dict = {
                "type": "tool_result",
                "tool_use_id": r.tool_call_id,
                "content": tool_result_content(r.content),
            }
            if not r.success:
                block["is_error"] = True
            blocks.append(block)
        return blocks

    def get_stop_reason(self, response: Any) -> str | None:
        return get_field(response, "stop_reason")

    def is_tool_use_stop(self, response: Any) -> bool:
        return self.get_stop_reason(response) == "tool_use"

    def is_end_turn_stop(self, response: Any) -> bool:
        return self.get_stop_reason(response) in ("end_turn", "stop_sequence")

    def map_finish_reason(self, reason: str | None) -> FinishReason:
        return FINISH_REASONS.get(reason or "", FinishReason.UNKNOWN)

    def extract_text_content(self, response: Any) -> str:
        return "".join(
            get_field(block, "text", "")
            for block in get_field(response, "content") or []
            if get_field(block, "type") == "text"
        )

    def build_assistant_tool_message(
        self, tool_calls: list[ToolCall], text: str | None = None
    ) -> dict:
        content: list[dict] = []
        if text:
            content.append({"type": "text", "text": text})
        for tc in tool_calls:
            content.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.args})
        return {"role": "assistant", "content": content}

    def build_tool_result_message(self, results: list[UnifiedToolResult]) -> list[dict]:
        """All results go into a single user turn."""
        return [{"role": "user", "content": self.format_tool_results(results)}]
