"""OpenAI chat-completions tool format, shared by OpenAI-compatible vendors."""

from __future__ import annotations

import copy
from typing import Any

from agentbridge.llm.formatters.base import get_field
from agentbridge.llm.types import FinishReason, ToolCall, UnifiedToolResult, generate_tool_call_id
from agentbridge.tools.types import ToolDefinition

FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class OpenAIFormatter:
    name = "openai"

    def transform_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": copy.deepcopy(t.input_schema),
                },
            }
            for t in tools
        ]

    def _choice(self, response: Any) -> Any:
        choices = get_field(response, "choices") or []
        return choices[0] if choices else None

    def parse_tool_calls(self, response: Any) -> list[ToolCall]:
        message = get_field(self._choice(response), "message")
        result = []
        for tc in get_field(message, "tool_calls") or []:
            func = get_field(tc, "function")
            result.append(ToolCall.from_arguments(
                get_field(tc, "id") or generate_tool_call_id(),
                get_field(func, "name", ""),
                get_field(func, "arguments"),
            ))
        return result

    def format_tool_results(self, results: list[UnifiedToolResult]) -> list[dict]:
        return [
            {"role": "tool", "tool_call_id": r.tool_call_id, "content": r.content}
            for r in results
        ]

    def get_stop_reason(self, response: Any) -> str | None:
        return get_field(self._choice(response), "finish_reason")

    def is_tool_use_stop(self, response: Any) -> bool:
        return self.get_stop_reason(response) in ("tool_calls", "function_call")

    def is_end_turn_stop(self, response: Any) -> bool:
        return self.get_stop_reason(response) == "stop"

    def map_finish_reason(self, reason: str | None) -> FinishReason:
        return FINISH_REASONS.get(reason or "", FinishReason.UNKNOWN)

    def extract_text_content(self, response: Any) -> str:
        message = get_field(self._choice(response), "message")
        return get_field(message, "content") or ""

    def build_assistant_tool_message(
        self, tool_calls: list[ToolCall], text: str | None = None
    ) -> dict:
        return {
            "role": "assistant",
            "content": text or None,
            "tool_calls": [tc.to_dict() for tc in tool_calls],
        }

    def build_tool_result_message(self, results: list[UnifiedToolResult]) -> list[dict]:
        return self.format_tool_results(results)
