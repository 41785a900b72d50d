"""Ollama adapter using the server's OpenAI-compatible ``/v1`` endpoint."""

from __future__ import annotations

from typing import Any

from agentbridge.llm.openai_provider import OpenAIProvider

OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(OpenAIProvider):
    provider = "ollama"
    error_prefix = "OLLAMA"
    default_model = "llama3"
    default_base_url = OLLAMA_BASE_URL
    supports_documents = False

    def __init__(self, api_key: str | None = None, base_url: str | None = None, **kwargs: Any):
        # Ollama ignores the key but the SDK refuses to start without one
        super().__init__(api_key=api_key or "ollama", base_url=_v1(base_url), **kwargs)


def _v1(base_url: str | None) -> str | None:
    """Accept the bare server address (``http://host:11434``) as well."""
    if base_url and not base_url.rstrip("/").endswith("/v1"):
        return base_url.rstrip("/") + "/v1"
    return base_url
