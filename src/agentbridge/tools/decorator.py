"""@tool decorator for defining server-side tools with auto-generated JSON schemas."""

from __future__ import annotations

import inspect
import types
import typing
from typing import Any, Callable, get_args, get_origin

from agentbridge.tools.types import SERVER, AIContextFn, AIResponseMode, ToolContext, ToolDefinition

# Registry of all decorated tools (populated at import time)
_TOOL_DEFINITIONS: dict[str, ToolDefinition] = {}

# Parameter name that receives the ToolContext instead of a model argument
CONTEXT_PARAM = "context"


def _python_type_to_json(annotation: Any) -> dict:
    """Convert a Python type annotation to a JSON Schema type."""
    if annotation is inspect.Parameter.empty or annotation is Any:
        return {"type": "string"}

    origin = get_origin(annotation)
    args = get_args(annotation)

    # Handle list[X]
    if origin is list:
        items = _python_type_to_json(args[0]) if args else {"type": "string"}
        return {"type": "array", "items": items}

    # Handle dict[str, X]
    if origin is dict or annotation is dict:
        return {"type": "object"}

    # Handle Optional[X] / X | None
    if origin is types.UnionType or origin is typing.Union:
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1:
            return _python_type_to_json(non_none[0])
        return {"type": "string"}

    # Handle Literal["a", "b"]
    if origin is typing.Literal:
        return {"type": "string", "enum": list(args)}

    type_map = {
        str: {"type": "string"},
        int: {"type": "integer"},
        float: {"type": "number"},
        bool: {"type": "boolean"},
    }
    return dict(type_map.get(annotation, {"type": "string"}))


def _parse_param_docs(docstring: str) -> dict[str, str]:
    """Extract parameter descriptions from Google-style docstring Args section."""
    result: dict[str, str] = {}
    in_args = False
    current_param = None

    for line in docstring.split("\n"):
        stripped = line.strip()
        if stripped.lower().startswith("args:"):
            in_args = True
            continue
        if not in_args:
            continue
        # Next section header (Returns:, Raises:) ends the Args block
        if stripped and not line.startswith((" ", "\t")) and stripped.endswith(":"):
            break
        if ":" in stripped:
            param_name, desc = stripped.split(":", 1)
            param_name = param_name.strip().lstrip("-").strip()
            if param_name and " " not in param_name:
                current_param = param_name
                result[current_param] = desc.strip()
                continue
        if current_param and stripped:
            result[current_param] += " " + stripped

    return result


def build_input_schema(func: Callable, description: str = "") -> dict:
    """Build a JSON schema for ``func``'s parameters from its signature and docstring."""
    sig = inspect.signature(func)
    try:
        hints = typing.get_type_hints(func)
    except NameError:
        # Annotations referencing names only imported under TYPE_CHECKING
        hints = {}
    param_docs = _parse_param_docs(inspect.getdoc(func) or description)

    properties: dict = {}
    required: list[str] = []

    for param_name, param in sig.parameters.items():
        if param_name in ("self", "cls", CONTEXT_PARAM):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        prop = _python_type_to_json(hints.get(param_name, param.annotation))
        if param_name in param_docs:
            prop["description"] = param_docs[param_name]
        properties[param_name] = prop

        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    return {"type": "object", "properties": properties, "required": required}


def _make_handler(func: Callable) -> Callable:
    """Adapt ``func(**args)`` to the ``handler(args, context)`` convention."""
    wants_context = CONTEXT_PARAM in inspect.signature(func).parameters

    if inspect.iscoroutinefunction(func):
        async def handler(args: dict, context: ToolContext):
            if wants_context:
                return await func(**args, context=context)
            return await func(**args)
    else:
        def handler(args: dict, context: ToolContext):
            if wants_context:
                return func(**args, context=context)
            return func(**args)

    handler.__name__ = func.__name__
    handler.__wrapped__ = func
    return handler


def tool(
    name: str | None = None,
    description: str | None = None,
    location: str = SERVER,
    ai_response_mode: AIResponseMode | str | None = None,
    ai_context: str | AIContextFn | None = None,
) -> Callable:
    """Decorator that marks a function as a tool.

    A parameter named ``context`` receives the :class:`ToolContext`; every
    other parameter becomes a model-visible argument.

    Args:
        name: Tool name (defaults to function name).
        description: Tool description (defaults to first line of docstring).
        location: ``"server"`` to run here, ``"client"`` to hand calls back.
        ai_response_mode: How much of the result the model sees.
        ai_context: Summary string, or ``fn(result, args)`` producing one.
    """
    def decorator(func: Callable) -> Callable:
        tool_name = name or func.__name__
        doc = inspect.getdoc(func) or ""
        tool_desc = description or doc.split("\n")[0] or tool_name

        definition = ToolDefinition(
            name=tool_name,
            description=tool_desc,
            input_schema=build_input_schema(func, tool_desc),
            location=location,
            handler=_make_handler(func),
            ai_response_mode=ai_response_mode,
            ai_context=ai_context,
        )
        _TOOL_DEFINITIONS[tool_name] = definition

        # Attach metadata to the function itself
        func._tool = definition
        return func

    return decorator


def get_registered_tools() -> dict[str, ToolDefinition]:
    """Return all registered tool definitions."""
    return _TOOL_DEFINITIONS.copy()
