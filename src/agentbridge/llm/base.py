"""Provider adapter interface."""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol

from agentbridge.llm.events import StreamEvent
from agentbridge.llm.types import CompletionRequest, CompletionResult


class ProviderAdapter(Protocol):
    """Protocol that all provider adapters must implement.

    ``stream`` never raises: vendor failures arrive as a single ``error``
    event and cancellation simply ends the sequence. ``complete`` raises
    :class:`~agentbridge.llm.errors.ProviderError` on failure.
    """

    provider: str
    model: str

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]: ...

    async def complete(self, request: CompletionRequest) -> CompletionResult: ...


async def close_stream(stream: Any) -> None:
    """Release the HTTP response behind a partially read SDK stream."""
    close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
    if close is not None:
        await close()
