"""Per-request conversation state driven by the agent loop."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from agentbridge.llm.types import Message, TokenUsage


@dataclass
class ConversationState:
    """Mutable state of one agent-loop request.

    ``messages`` is the full history sent to the model; ``new_messages``
    is only what this request appended and what the caller persists.
    """

    messages: list[Message]
    new_messages: list[Message] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    iteration: int = 0
    signal: asyncio.Event | None = None

    @classmethod
    def create(cls, messages: list[Message], signal: asyncio.Event | None = None) -> ConversationState:
        return cls(messages=list(messages), signal=signal)

    @property
    def cancelled(self) -> bool:
        return self.signal is not None and self.signal.is_set()

    def append(self, *messages: Message) -> None:
        self.messages.extend(messages)
        self.new_messages.extend(messages)

    def add_usage(self, usage: TokenUsage | None) -> None:
        if usage is not None:
            self.usage = self.usage + usage
