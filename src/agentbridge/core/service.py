"""Shared service layer used by the CLI and by embedding applications."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from agentbridge.core.agent import AgentLoop
from agentbridge.core.config import Settings, get_project_root, load_settings
from agentbridge.core.results import GenerateResult, OnFinish, StreamResult, call_on_finish
from agentbridge.core.session import ConversationState
from agentbridge.core.tool_registry import ToolRegistry
from agentbridge.llm.base import ProviderAdapter
from agentbridge.llm.registry import adapter_from_settings
from agentbridge.llm.types import Message, RequestConfig
from agentbridge.tools.types import ToolDefinition

logger = logging.getLogger(__name__)


@dataclass
class ChatRequest:
    """One external request. ``tools`` are the caller's client declarations."""

    messages: list[Message]
    tools: list[ToolDefinition | dict] = field(default_factory=list)
    system_prompt: str | None = None
    config: RequestConfig | None = None
    thread_id: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    tool_context: dict[str, Any] = field(default_factory=dict)
    streaming: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> ChatRequest:
        """Build from a camelCase JSON request body."""
        config = None
        raw = data.get("config") or {}
        if raw:
            config = RequestConfig(
                model=raw.get("model"),
                temperature=raw.get("temperature"),
                max_tokens=raw.get("maxTokens", raw.get("max_tokens")),
                thinking=bool(raw.get("thinking", False)),
                thinking_budget=raw.get("thinkingBudget", raw.get("thinking_budget")),
            )
        return cls(
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            tools=list(data.get("tools") or []),
            system_prompt=data.get("systemPrompt", data.get("system_prompt")),
            config=config,
            thread_id=data.get("threadId", data.get("thread_id")),
            headers=dict(data.get("headers") or {}),
            tool_context=dict(data.get("toolContext") or data.get("tool_context") or {}),
            streaming=data.get("streaming", True),
        )


class AgentService:
    """Central service that wires settings, adapter and tool registry."""

    def __init__(
        self,
        settings: Settings | None = None,
        adapter: ProviderAdapter | None = None,
        tools: list[ToolDefinition] | None = None,
    ):
        self._load_env()
        self.settings = settings or load_settings()

        if self.settings.agent.debug:
            logging.getLogger("agentbridge").setLevel(logging.DEBUG)

        # Tool registry
        self.tool_registry = ToolRegistry(tools)
        if self.settings.tools_modules:
            self.tool_registry.discover(self.settings.tools_modules)

        # LLM adapter (lazy init)
        self._adapter = adapter

    @staticmethod
    def _load_env():
        load_dotenv(get_project_root() / ".env")

    @property
    def adapter(self) -> ProviderAdapter:
        """Lazily initialize the adapter based on configuration."""
        if self._adapter is None:
            self._adapter = adapter_from_settings(self.settings)
            logger.info("Using %s adapter with model %s", self._adapter.provider, self._adapter.model)
        return self._adapter

    def register_tool(self, tool: ToolDefinition) -> None:
        self.tool_registry.register(tool)

    def create_loop(self, request: ChatRequest) -> AgentLoop:
        """Build an agent loop for one request.

        Client declarations are merged per request; the registry itself
        is not modified.
        """
        return AgentLoop(
            adapter=self.adapter,
            tools=self.tool_registry.merge_client_tools(request.tools),
            registry=self.tool_registry,
            max_iterations=self.settings.agent.max_iterations,
            system_prompt=request.system_prompt or self.settings.system_prompt,
            config=request.config,
            thread_id=request.thread_id,
            headers=request.headers,
            tool_context=request.tool_context,
            include_usage=True,
        )

    def stream(
        self,
        request: ChatRequest,
        signal: asyncio.Event | None = None,
        on_finish: OnFinish | None = None,
    ) -> StreamResult:
        """Run the agent loop over streamed turns."""
        state = ConversationState.create(request.messages, signal=signal)
        loop = self.create_loop(request)
        return StreamResult(
            loop.run(state),
            state,
            on_finish=on_finish,
            include_usage=self.settings.agent.include_usage,
        )

    async def generate(
        self,
        request: ChatRequest,
        signal: asyncio.Event | None = None,
        on_finish: OnFinish | None = None,
    ) -> GenerateResult:
        """Run the agent loop over request/response turns and aggregate it."""
        state = ConversationState.create(request.messages, signal=signal)
        loop = self.create_loop(request)
        result = await GenerateResult.from_events(loop.run_non_streaming(state))
        result.usage = state.usage
        await call_on_finish(on_finish, state)
        return result
