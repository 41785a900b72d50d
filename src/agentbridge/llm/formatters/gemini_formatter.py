"""Gemini function-calling format (native API)."""

from __future__ import annotations

import copy
import json
from typing import Any

from agentbridge.llm.formatters.base import get_field
from agentbridge.llm.types import FinishReason, ToolCall, UnifiedToolResult, generate_tool_call_id
from agentbridge.tools.types import ToolDefinition

FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
    "IMAGE_SAFETY": FinishReason.CONTENT_FILTER,
}


def function_response_payload(content: str) -> dict:
    """Gemini wants an object; non-object results are wrapped under ``result``."""
    try:
        value = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return {"result": content}
    if isinstance(value, dict):
        return value
    return {"result": value}


def reason_name(reason: Any) -> str | None:
    """google-genai reports finish reasons as enums; normalize to the name."""
    if reason is None:
        return None
    return getattr(reason, "name", None) or str(reason)


class GeminiFormatter:
    name = "gemini"

    def transform_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        if not tools:
            return []
        declarations = []
        for t in tools:
            declaration: dict = {"name": t.name, "description": t.description}
            # Parameterless functions must omit the schema entirely
            if t.input_schema.get("properties"):
                declaration["parameters_json_schema"] = copy.deepcopy(t.input_schema)
            declarations.append(declaration)
        return [{"function_declarations": declarations}]

    def response_parts(self, response: Any) -> list:
        candidates = get_field(response, "candidates") or []
        if not candidates:
            return []
        return get_field(get_field(candidates[0], "content"), "parts") or []

    def parse_tool_calls(self, response: Any) -> list[ToolCall]:
        calls = []
        for part in self.response_parts(response):
            fc = get_field(part, "function_call")
            if fc is None:
                continue
            calls.append(ToolCall(
                id=get_field(fc, "id") or generate_tool_call_id(),
                name=get_field(fc, "name", ""),
                args=dict(get_field(fc, "args") or {}),
            ))
        return calls

    def format_tool_results(self, results: list[UnifiedToolResult]) -> list[dict]:
        return [
            {"function_response": {"name": r.name, "response": function_response_payload(r.content)}}
            for r in results
        ]

    def get_stop_reason(self, response: Any) -> str | None:
        candidates = get_field(response, "candidates") or []
        if not candidates:
            return None
        return reason_name(get_field(candidates[0], "finish_reason"))

    def is_tool_use_stop(self, response: Any) -> bool:
        # Gemini reports STOP for function calls too
        return bool(self.parse_tool_calls(response))

    def is_end_turn_stop(self, response: Any) -> bool:
        return self.get_stop_reason(response) == "STOP" and not self.is_tool_use_stop(response)

    def map_finish_reason(self, reason: str | None) -> FinishReason:
        return FINISH_REASONS.get(reason or "", FinishReason.UNKNOWN)

    def extract_text_content(self, response: Any) -> str:
        return "".join(
            get_field(part, "text") or ""
            for part in self.response_parts(response)
            if not get_field(part, "thought")
        )

    def build_assistant_tool_message(
        self, tool_calls: list[ToolCall], text: str | None = None
    ) -> dict:
        parts: list[dict] = []
        if text:
            parts.append({"text": text})
        for tc in tool_calls:
            parts.append({"function_call": {"name": tc.name, "args": tc.args}})
        return {"role": "model", "parts": parts}

    def build_tool_result_message(self, results: list[UnifiedToolResult]) -> list[dict]:
        return [{"role": "user", "parts": self.format_tool_results(results)}]
