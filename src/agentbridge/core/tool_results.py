"""What the model is told about a server tool's result."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from typing import Any

from agentbridge.llm.content import to_data_uri
from agentbridge.tools.types import AIContent, AIResponseMode, ToolDefinition, ToolDirective, ToolResponse

logger = logging.getLogger(__name__)


def to_jsonable(result: Any) -> Any:
    if isinstance(result, ToolResponse):
        return result.to_dict()
    if is_dataclass(result) and not isinstance(result, type):
        return asdict(result)
    return result


def result_to_json(result: Any) -> str:
    if isinstance(result, str):
        return json.dumps(result)
    return json.dumps(to_jsonable(result), default=str)


def serialize_ai_content(content: list[AIContent]) -> str:
    """Serialize multimodal content as OpenAI-style parts in a JSON string."""
    parts = []
    for item in content:
        if item.type == "image":
            url = to_data_uri(item.data or "", item.media_type or "image/png")
            parts.append({"type": "image_url", "image_url": {"url": url}})
        else:
            parts.append({"type": "text", "text": item.text or ""})
    return json.dumps(parts)


def build_tool_result_for_ai(tool: ToolDefinition | None, result: Any, args: dict) -> str:
    """Apply the AI-response policy to one tool result.

    Precedence is result directive, then tool setting, then ``full``.
    Multimodal directive content always goes through unchanged.
    """
    directive: ToolDirective | None = result.directive if isinstance(result, ToolResponse) else None

    if directive and directive.content:
        return serialize_ai_content(directive.content)

    mode = (directive and directive.mode) or (tool and tool.ai_response_mode) or AIResponseMode.FULL
    mode = AIResponseMode(mode)

    context: str | None = None
    if directive and directive.context:
        context = directive.context
    elif tool and tool.ai_context:
        if callable(tool.ai_context):
            try:
                context = tool.ai_context(result, args)
            except Exception:
                logger.exception("ai_context for %s failed", tool.name)
        else:
            context = tool.ai_context

    if mode == AIResponseMode.NONE:
        return context or "[Result displayed to user]"
    if mode == AIResponseMode.BRIEF:
        return context or f"[Tool {tool.name if tool else 'unknown'} executed successfully]"

    full_data = result_to_json(result)
    return f"{context}\n\nFull data: {full_data}" if context else full_data
