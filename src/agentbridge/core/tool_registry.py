"""Tool registry: discover, merge and execute tool definitions."""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from dataclasses import dataclass
from typing import Any

from agentbridge.tools.decorator import get_registered_tools
from agentbridge.tools.types import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)


@dataclass
class ToolExecution:
    """Outcome of one handler call. ``error`` is set iff the handler raised."""

    result: Any
    error: str | None = None


class ToolRegistry:
    """Holds server-side tool definitions for the lifetime of a service.

    The registry is read at request start and never mutated by a running
    request; client declarations are merged into a per-request list instead.
    """

    def __init__(self, tools: list[ToolDefinition] | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        for t in tools or []:
            self.register(t)

    def discover(self, module_names: list[str]) -> None:
        """Import modules (and their submodules) to trigger @tool registration."""
        for module_name in module_names:
            try:
                mod = importlib.import_module(module_name)
                # If it's a package, import all submodules
                if hasattr(mod, "__path__"):
                    for _importer, submod_name, _is_pkg in pkgutil.iter_modules(mod.__path__):
                        full_name = f"{module_name}.{submod_name}"
                        try:
                            importlib.import_module(full_name)
                        except Exception as e:
                            logger.warning("Failed to import tool module %s: %s", full_name, e)
            except Exception as e:
                logger.warning("Failed to import tool module %s: %s", module_name, e)

        self._tools.update(get_registered_tools())
        logger.info("Discovered %d tools: %s", len(self._tools), list(self._tools.keys()))

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.warning("Replacing registered tool: %s", tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all available tool names."""
        return list(self._tools.keys())

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def merge_client_tools(self, declarations: list[ToolDefinition | dict] | None) -> list[ToolDefinition]:
        """Registered tools plus caller-declared client tools.

        A registered server tool keeps precedence over a client declaration
        with the same name.
        """
        merged = dict(self._tools)
        for decl in declarations or []:
            t = decl if isinstance(decl, ToolDefinition) else ToolDefinition.from_declaration(decl)
            existing = merged.get(t.name)
            if existing is not None and existing.is_server:
                logger.debug("Client declaration %s shadowed by server tool", t.name)
                continue
            merged[t.name] = t
        return list(merged.values())

    async def execute(self, tool: ToolDefinition, args: dict[str, Any], context: ToolContext) -> ToolExecution:
        """Run a server tool's handler.

        A raising handler becomes ``{"success": False, "error": ...}``; the
        exception does not propagate.
        """
        if tool.handler is None:
            message = f"Tool {tool.name} has no handler"
            return ToolExecution({"success": False, "error": message}, message)

        try:
            result = tool.handler(args, context)
            if inspect.isawaitable(result):
                result = await result
            return ToolExecution(result)
        except Exception as e:
            logger.exception("Tool execution failed: %s", tool.name)
            message = str(e) or "Tool execution failed"
            return ToolExecution({"success": False, "error": message}, message)
