"""Formatter protocol: unified tools, calls and results <-> vendor shapes."""

from __future__ import annotations

from typing import Any, Protocol

from agentbridge.llm.types import FinishReason, ToolCall, UnifiedToolResult
from agentbridge.tools.types import ToolDefinition


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a dict or an SDK response object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class ProviderFormatter(Protocol):
    """Protocol that every vendor tool formatter must implement.

    ``response`` arguments accept either the SDK's response object or its
    plain-dict form.
    """

    name: str

    def transform_tools(self, tools: list[ToolDefinition]) -> list[dict]: ...

    def parse_tool_calls(self, response: Any) -> list[ToolCall]: ...

    def format_tool_results(self, results: list[UnifiedToolResult]) -> list[dict]: ...

    def is_tool_use_stop(self, response: Any) -> bool: ...

    def is_end_turn_stop(self, response: Any) -> bool: ...

    def get_stop_reason(self, response: Any) -> str | None: ...

    def map_finish_reason(self, reason: str | None) -> FinishReason: ...

    def extract_text_content(self, response: Any) -> str: ...

    def build_assistant_tool_message(
        self, tool_calls: list[ToolCall], text: str | None = None
    ) -> dict: ...

    def build_tool_result_message(self, results: list[UnifiedToolResult]) -> list[dict]: ...
